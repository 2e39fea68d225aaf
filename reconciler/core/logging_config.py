# reconciler/core/logging_config.py
import logging
from typing import Optional
from .config import Settings

def setup_logging(settings: Settings, level: Optional[str] = None):
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quiet the HTTP client libraries used for Vault and the Kubernetes API
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)

# reconciler/services/package_service.py
import logging
from typing import Iterable, List

from reconciler.core.config import Settings
from reconciler.services.commands import CommandRunner

logger = logging.getLogger(__name__)


class PackageService:
    def __init__(self, settings: Settings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner

    def missing(self, tools: Iterable[str]) -> List[str]:
        return [tool for tool in tools if not self.runner.which(tool)]

    def install(self, tool: str) -> bool:
        """Installs ``tool`` unless it is already on PATH. Returns True if it was installed."""
        if self.runner.which(tool):
            logger.info(f"{tool} is already installed.")
            return False
        package = self.settings.TOOL_PACKAGES.get(tool, tool)
        logger.info(f"Installing {tool} ({self.settings.PACKAGE_MANAGER} install {package})...")
        self.runner.run([self.settings.PACKAGE_MANAGER, "install", package])
        return True

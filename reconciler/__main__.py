# reconciler/__main__.py
import argparse
import logging
import sys
from typing import Optional, Sequence

from reconciler.core.config import Settings
from reconciler.core.exceptions import ReconcilerError
from reconciler.core.logging_config import setup_logging
from reconciler.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="reconciler",
        description="Bring the local Vault + Argo CD demo environment into its desired state.")
    parser.add_argument('--workdir', help="Demo repository directory (default: WORKDIR setting)")
    parser.add_argument('--repo-url', help="Git remote to configure when the repository has none")
    parser.add_argument('--log-level', help="Logging level (default: LOG_LEVEL setting)")
    commands = parser.add_subparsers(dest='command')
    commands.add_parser('reconcile', help="Probe, then fix only what is missing (default)")
    commands.add_parser('verify', help="Probe only; exit non-zero if anything is missing")
    commands.add_parser('deploy', help="Apply the generated Argo CD Application")
    commands.add_parser('status', help="Show demo secrets, Application sync state and the workload")
    rotate = commands.add_parser('rotate', help="Rewrite the demo database secret with a new username")
    rotate.add_argument('--username', help="New username (default: DEFAULT_ROTATED_USERNAME setting)")
    serve = commands.add_parser('serve', help="Run the HTTP API")
    serve.add_argument('--host', default='127.0.0.1')
    serve.add_argument('--port', type=int, default=8000)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    overrides = {}
    if args.workdir:
        overrides['WORKDIR'] = args.workdir
    if args.repo_url:
        overrides['REPO_URL'] = args.repo_url
    if args.log_level:
        overrides['LOG_LEVEL'] = args.log_level
    settings = Settings(**overrides)
    command = args.command or 'reconcile'

    if command == 'serve':
        from reconciler.main import serve
        serve(settings, host=args.host, port=args.port)
        return 0

    setup_logging(settings)
    service = ReconciliationService(settings)
    try:
        if command == 'verify':
            return 0 if service.verify().converged else 1
        if command == 'deploy':
            service.deploy_application()
            return 0
        if command == 'status':
            return 1 if service.demo_status().errors else 0
        if command == 'rotate':
            service.rotate_secret(args.username)
            return 0
        return 0 if service.reconcile().succeeded else 1
    except ReconcilerError as e:
        logger.error(f"{command} failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())

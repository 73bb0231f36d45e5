"""Command line entrypoint: ``contractor reconcile`` and ``contractor serve``."""

import argparse
import asyncio
import logging
import sys

from contractor.clients.gitea import GiteaClient
from contractor.config import ContractorSettings, ServiceSettings
from contractor.errors import ContractorError
from contractor.models.gitea import ReconcileSummary
from contractor.reconciler import Reconciler

log = logging.getLogger(__name__)


def build_parser(settings: ContractorSettings, service: ServiceSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="contractor", description="Renovate webhook reconciler for Gitea")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the webhook server")
    serve.add_argument("--host", default=service.host)
    serve.add_argument("--port", type=int, default=service.port)

    rec = sub.add_parser("reconcile", help="run a single reconciliation pass")
    rec.add_argument("--user")
    rec.add_argument("--org", action="append", dest="orgs")
    rec.add_argument("--filter", default=settings.filter)
    rec.add_argument("--force-refresh", action="store_true", default=settings.force_refresh)
    return parser


def _report(summary: ReconcileSummary) -> None:
    log.info(
        "discovered %d, filtered %d, renovate enabled %d",
        summary.discovered, summary.filtered, summary.config_enabled,
    )
    for failure in summary.errors:
        log.error("%s (%s): %s", failure.repository, failure.stage, failure.error)


async def run_reconcile(args: argparse.Namespace, settings: ContractorSettings) -> int:
    async with GiteaClient.from_env() as client:
        reconciler = Reconciler(
            client, concurrency=settings.concurrency, only_enabled=settings.only_enabled,
        )
        summary = await reconciler.reconcile(
            user=args.user,
            orgs=args.orgs,
            filter=args.filter,
            force_refresh=args.force_refresh,
        )
    _report(summary)
    return 0 if summary.ok else 1


def main(argv: list[str] | None = None) -> int:
    settings = ContractorSettings()
    args = build_parser(settings, ServiceSettings()).parse_args(argv)

    if args.command == "serve":
        import uvicorn

        log.info("Starting service on %s:%d", args.host, args.port)
        uvicorn.run("contractor.main:app", host=args.host, port=args.port)
        return 0

    from contractor.main import configure_logging

    configure_logging(settings.log_level)
    log.info("running reconcile")
    try:
        code = asyncio.run(run_reconcile(args, settings))
    except ContractorError as e:
        log.error("reconcile failed: %s", e)
        return 1
    log.info("done running reconcile")
    return code


if __name__ == "__main__":
    sys.exit(main())

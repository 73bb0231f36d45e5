"""Webhook event routing for contractor bot commands.

Comments starting with the command name (``contractor`` by default) are
parsed as bot commands::

    contractor refresh          refresh the webhook of this repository
    contractor refresh --all    reconcile every repository of this owner
"""

import argparse
import logging
import re
import shlex

from pydantic import BaseModel

from contractor.errors import ContractorError, NotFoundError
from contractor.models.gitea import ReconcileSummary, Repository
from contractor.reconciler import Reconciler

logger = logging.getLogger(__name__)

COMMENT_EVENTS = ("issue_comment", "pull_request_comment")


class BotCommandError(ContractorError):
    """A comment addressed to the bot could not be parsed."""


class BotRequest(BaseModel):
    repo: Repository
    command: str

    @classmethod
    def from_webhook(cls, data: dict) -> "BotRequest":
        """Build a request from a Gitea comment payload.

        Raises RepositoryParseError when the repository full name is invalid.
        """
        full_name = data.get("repository", {}).get("full_name", "")
        body = data.get("comment", {}).get("body", "")
        return cls(repo=Repository.from_full_name(full_name), command=body)


class _BotArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise BotCommandError(message)


def _build_parser(command_name: str) -> argparse.ArgumentParser:
    parser = _BotArgumentParser(prog=command_name, add_help=False)
    sub = parser.add_subparsers(dest="command", required=True, parser_class=_BotArgumentParser)
    refresh = sub.add_parser("refresh", add_help=False)
    refresh.add_argument("--all", action="store_true")
    return parser


class Bot:
    """Parses bot commands and triggers reconciliation."""

    def __init__(self, reconciler: Reconciler, command_name: str = "contractor") -> None:
        self._reconciler = reconciler
        self._command_name = command_name
        self._parser = _build_parser(command_name)

    def parse(self, command: str) -> argparse.Namespace | None:
        """Return the parsed command, or None when not addressed to the bot."""
        words = shlex.split(command.strip())
        if not words or words[0] != self._command_name:
            return None
        return self._parser.parse_args(words[1:])

    async def _reconcile_owner(self, owner: str) -> ReconcileSummary:
        try:
            return await self._reconciler.reconcile(orgs=[owner], force_refresh=True)
        except NotFoundError:
            # Not an organisation: reconcile the owner's repositories from the user listing
            logger.info("[bot] %s is not an organisation, using user repositories", owner)
            return await self._reconciler.reconcile(
                user=owner, filter=f"^{re.escape(owner)}/", force_refresh=True,
            )

    async def handle_request(self, req: BotRequest) -> ReconcileSummary | None:
        try:
            args = self.parse(req.command)
        except (BotCommandError, ValueError) as e:
            logger.warning("[bot] Ignoring invalid command on %s: %s", req.repo, e)
            return None
        if args is None:
            return None

        logger.info("[bot] triggering refresh for: %s, all: %s", req.repo, args.all)
        if args.all:
            return await self._reconcile_owner(req.repo.owner)
        return await self._reconciler.refresh(req.repo)


async def handle_webhook(bot: Bot, event_type: str, data: dict) -> ReconcileSummary | None:
    """Route Gitea webhook events to the bot."""
    action = data.get("action", "")

    if event_type in COMMENT_EVENTS and action in ("created", "edited"):
        return await bot.handle_request(BotRequest.from_webhook(data))

    logger.debug("[webhook] Ignoring event: %s/%s", event_type, action)
    return None

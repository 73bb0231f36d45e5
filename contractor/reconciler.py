"""Reconcile renovate webhooks across a user's and organisations' repositories.

A pass runs in strictly sequential stages: discover, deduplicate, filter,
probe for a renovate config, then ensure the webhook. The probe and webhook
stages fan out per repository; a failure there is recorded against that
repository in the summary instead of aborting the pass.
"""

import logging
import re

from contractor.clients.base import HostClient
from contractor.errors import ConfigError, ReconcileError
from contractor.models.gitea import (
    ReconcileDecision,
    ReconcileSummary,
    Repository,
    RepositoryFailure,
)
from contractor.utils import gather_settled

log = logging.getLogger(__name__)


def compile_filter(pattern: str | None) -> re.Pattern[str] | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"filter regex failed to compile: {pattern!r}: {e}") from e


def filter_repositories(
    repos: list[Repository], pattern: re.Pattern[str] | None,
) -> list[Repository]:
    if pattern is None:
        return repos

    kept = []
    for repo in repos:
        if pattern.search(repo.full_name):
            kept.append(repo)
        else:
            log.debug("repository: %s, didn't match filter %s", repo, pattern.pattern)
    return kept


def deduplicate(repos: list[Repository]) -> list[Repository]:
    """Unique repositories, sorted by owner/name."""
    return sorted(set(repos), key=lambda r: (r.owner, r.name))


def _failure(repo: Repository, stage: str, error: BaseException) -> RepositoryFailure:
    log.error("[%s] %s failed: %s", stage, repo, error)
    return RepositoryFailure(repository=repo.full_name, stage=stage, error=str(error))


class Reconciler:
    """Converges repository webhooks toward the desired state."""

    def __init__(self, client: HostClient, concurrency: int = 10, only_enabled: bool = False) -> None:
        self._client = client
        self._concurrency = concurrency
        self._only_enabled = only_enabled

    async def get_repositories(
        self, user: str | None = None, orgs: list[str] | None = None,
    ) -> list[Repository]:
        """Discover and deduplicate. Any listing failure propagates."""
        repos: list[Repository] = []
        if user:
            repos.extend(await self._client.list_user_repositories(user))
        for org in orgs or []:
            repos.extend(await self._client.list_org_repositories(org))
        return deduplicate(repos)

    async def get_renovate_enabled(
        self, repos: list[Repository], summary: ReconcileSummary,
    ) -> list[Repository]:
        enabled = []
        results = await gather_settled(self._client.has_renovate_config, repos, self._concurrency)
        for repo, result in results:
            if isinstance(result, BaseException):
                summary.errors.append(_failure(repo, "probe", result))
            elif result:
                enabled.append(repo)
            else:
                log.debug("repository: %s, doesn't have renovate enabled", repo)
        return enabled

    async def ensure_webhooks(
        self, repos: list[Repository], force_refresh: bool, summary: ReconcileSummary,
    ) -> None:
        async def ensure(repo: Repository) -> ReconcileDecision:
            return await self._client.ensure_webhook(repo, force_refresh)

        for repo, result in await gather_settled(ensure, repos, self._concurrency):
            if isinstance(result, BaseException):
                summary.errors.append(_failure(repo, "webhook", result))
            else:
                summary.record(repo, result)

    async def reconcile(
        self,
        user: str | None = None,
        orgs: list[str] | None = None,
        filter: str | None = None,
        force_refresh: bool = False,
        strict: bool = False,
    ) -> ReconcileSummary:
        """Run one reconciliation pass.

        Raises ConfigError for an invalid filter before any request is made,
        and propagates discovery failures. Per-repository failures end up in
        ``summary.errors``; with ``strict`` they raise ReconcileError instead.
        """
        pattern = compile_filter(filter)
        summary = ReconcileSummary()

        repos = await self.get_repositories(user, orgs)
        summary.discovered = len(repos)
        log.debug("found repositories: %d", len(repos))

        filtered = filter_repositories(repos, pattern)
        summary.filtered = len(filtered)
        log.debug("filtered repositories: %d", len(filtered))

        enabled = await self.get_renovate_enabled(filtered, summary)
        summary.config_enabled = len(enabled)
        log.debug("found repositories with renovate enabled: %d", len(enabled))

        targets = enabled if self._only_enabled else filtered
        await self.ensure_webhooks(targets, force_refresh, summary)

        log.info(
            "reconciled %d repositories: %d created, %d updated, %d skipped, %d failed",
            len(targets), len(summary.created), len(summary.updated),
            len(summary.skipped), len(summary.errors),
        )
        if strict and not summary.ok:
            raise ReconcileError(summary)
        return summary

    async def refresh(self, repo: Repository, force_refresh: bool = True) -> ReconcileSummary:
        """Reconcile a single, already known repository."""
        summary = ReconcileSummary(discovered=1, filtered=1)
        enabled = await self.get_renovate_enabled([repo], summary)
        summary.config_enabled = len(enabled)
        targets = enabled if self._only_enabled else [repo]
        await self.ensure_webhooks(targets, force_refresh, summary)
        return summary

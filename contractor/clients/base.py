"""Capability interfaces the reconciler depends on.

``GiteaClient`` implements all three; tests use an in-memory double.
"""

from typing import Protocol

from contractor.models.gitea import ReconcileDecision, Repository, Webhook


class RepositoryDirectory(Protocol):
    async def list_user_repositories(self, user: str) -> list[Repository]: ...

    async def list_org_repositories(self, org: str) -> list[Repository]: ...


class ConfigProbe(Protocol):
    async def has_renovate_config(self, repo: Repository) -> bool: ...


class WebhookManager(Protocol):
    async def get_owned_webhook(self, repo: Repository) -> Webhook | None: ...

    async def ensure_webhook(self, repo: Repository, force_refresh: bool) -> ReconcileDecision: ...


class HostClient(RepositoryDirectory, ConfigProbe, WebhookManager, Protocol):
    """Everything a full reconcile pass needs from the host."""

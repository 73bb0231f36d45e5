"""Exception hierarchy for contractor."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contractor.models.gitea import ReconcileSummary


class ContractorError(Exception):
    """Base exception for all contractor errors."""


class ConfigError(ContractorError):
    """Missing or invalid configuration."""


class ServiceError(ContractorError):
    """Base for all external service communication errors."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")


class TransportError(ServiceError):
    """The request never produced a response (connection, timeout)."""

    def __init__(self, service: str, url: str, message: str) -> None:
        self.url = url
        super().__init__(service, f"{url}: {message}")


class AuthenticationError(ServiceError):
    """Authentication failed (bad credentials or expired token)."""


class NotFoundError(ServiceError):
    """Requested resource was not found."""


class ApiResponseError(ServiceError):
    """Unexpected HTTP response from an external service."""

    def __init__(self, service: str, status_code: int, body: str = "", url: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        where = f" {url}" if url else ""
        super().__init__(service, f"HTTP {status_code}{where}: {body[:200]}")


class ParseError(ContractorError):
    """Data returned by the host could not be interpreted."""


class RepositoryParseError(ParseError):
    """A repository full name did not have the owner/name shape."""


class PaginationError(ParseError):
    """The Link header of a listing response was malformed."""


class DuplicateWebhookError(ContractorError):
    """More than one webhook on a repository is owned by contractor."""

    def __init__(self, repository: str, hook_ids: list[int]) -> None:
        self.repository = repository
        self.hook_ids = hook_ids
        super().__init__(
            f"{repository} has {len(hook_ids)} contractor webhooks "
            f"(ids {', '.join(str(i) for i in hook_ids)}), remove the extras manually"
        )


class ReconcileError(ContractorError):
    """A reconciliation pass finished with per-repository failures."""

    def __init__(self, summary: ReconcileSummary) -> None:
        self.summary = summary
        super().__init__(f"reconcile finished with {len(summary.errors)} failed repositories")

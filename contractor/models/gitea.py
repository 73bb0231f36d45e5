"""Pydantic models for Gitea repositories, webhooks and reconcile results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from contractor.errors import RepositoryParseError

GITEA_HOOK_TYPE = "gitea"
WEBHOOK_EVENTS = ["pull_request_comment", "issue_comment"]


class Repository(BaseModel):
    """A repository on the host, identified by owner and name."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @classmethod
    def from_full_name(cls, full_name: str) -> "Repository":
        """Parse an ``owner/name`` string as returned by the host."""
        owner, sep, name = full_name.partition("/")
        if not sep or not owner or not name:
            raise RepositoryParseError(
                f"name of repository is invalid, should contain a /: {full_name!r}"
            )
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


class WebhookConfig(BaseModel):
    url: str = ""


class Webhook(BaseModel):
    """A webhook as listed by ``GET /repos/{owner}/{repo}/hooks``."""

    id: int
    type: str
    config: WebhookConfig = Field(default_factory=WebhookConfig)

    @property
    def is_native(self) -> bool:
        return self.type == GITEA_HOOK_TYPE

    def is_owned_by(self, marker: str) -> bool:
        """Whether this hook was registered by contractor."""
        return self.is_native and marker in self.config.url


class CreateWebhookConfig(BaseModel):
    content_type: str = "json"
    url: str


class CreateWebhook(BaseModel):
    """Body for both creating and updating our webhook."""

    active: bool = True
    authorization_header: str | None = None
    branch_filter: str | None = "*"
    config: CreateWebhookConfig
    events: list[str] = Field(default_factory=lambda: list(WEBHOOK_EVENTS))
    type: str = GITEA_HOOK_TYPE

    @classmethod
    def desired(cls, url: str, authorization_header: str | None = None) -> "CreateWebhook":
        return cls(
            authorization_header=authorization_header or None,
            config=CreateWebhookConfig(url=url),
        )


class ReconcileDecision(str, Enum):
    SKIP = "skip"
    UPDATE = "update"
    CREATE = "create"


def decide(existing: Webhook | None, force_refresh: bool) -> ReconcileDecision:
    """Pick the single webhook action for a repository."""
    if existing is None:
        return ReconcileDecision.CREATE
    if force_refresh:
        return ReconcileDecision.UPDATE
    return ReconcileDecision.SKIP


class RepositoryFailure(BaseModel):
    """A repository that could not be probed or reconciled."""

    repository: str
    stage: str
    error: str


class ReconcileSummary(BaseModel):
    discovered: int = 0
    filtered: int = 0
    config_enabled: int = 0
    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[RepositoryFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def record(self, repository: Repository, decision: ReconcileDecision) -> None:
        bucket = {
            ReconcileDecision.CREATE: self.created,
            ReconcileDecision.UPDATE: self.updated,
            ReconcileDecision.SKIP: self.skipped,
        }[decision]
        bucket.append(repository.full_name)


class ReconcileRequest(BaseModel):
    """Parameters of a reconcile pass, as accepted over HTTP."""

    user: str | None = None
    orgs: list[str] | None = None
    filter: str | None = None
    force_refresh: bool = False

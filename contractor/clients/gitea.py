"""Gitea API client for repository discovery, renovate probing and webhooks.

Follows the from_env(), _handle_response(), typed methods pattern. All
requests go through one ``httpx.AsyncClient`` with a bounded timeout, and
listing fan-out is capped by a semaphore.
"""

import asyncio
import logging

import httpx

from contractor.config import ContractorSettings, GiteaSettings
from contractor.errors import (
    ApiResponseError,
    ConfigError,
    AuthenticationError,
    DuplicateWebhookError,
    NotFoundError,
    RepositoryParseError,
    TransportError,
)
from contractor.models.gitea import (
    CreateWebhook,
    ReconcileDecision,
    Repository,
    Webhook,
    decide,
)
from contractor.pagination import parse_link
from contractor.utils import gather_bounded

log = logging.getLogger(__name__)

_RETRY_STATUSES = {429, 500, 502, 503, 504}


class GiteaClient:
    """Gitea API client authenticated with a bearer token."""

    service_name: str = "gitea"

    def __init__(
        self,
        url: str,
        token: str,
        *,
        webhook_url: str,
        webhook_marker: str,
        webhook_secret: str = "",
        config_path: str = "renovate.json",
        concurrency: int = 10,
        timeout: float = 30,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        page_size: int = 50,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if webhook_marker not in webhook_url:
            raise ConfigError(f"webhook url {webhook_url!r} must contain marker {webhook_marker!r}")
        self._webhook_url = webhook_url
        self._webhook_marker = webhook_marker
        self._webhook_secret = webhook_secret
        self._config_path = config_path
        self._concurrency = concurrency
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._page_size = page_size
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/api/v1",
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "GiteaClient":
        gitea = GiteaSettings().require()
        settings = ContractorSettings()
        return cls(
            url=gitea.url,
            token=gitea.token,
            webhook_url=settings.webhook_url,
            webhook_marker=settings.webhook_marker,
            webhook_secret=settings.webhook_secret,
            config_path=settings.config_path,
            concurrency=settings.concurrency,
            timeout=gitea.timeout,
            max_retries=gitea.max_retries,
            retry_backoff=gitea.retry_backoff,
            page_size=gitea.page_size,
        )

    @property
    def webhook_marker(self) -> str:
        return self._webhook_marker

    def _handle_response(self, response: httpx.Response) -> None:
        """Raise typed errors for non-success responses."""
        url = str(response.request.url)
        if response.status_code in (401, 403):
            raise AuthenticationError(
                self.service_name, f"HTTP {response.status_code} for {url}",
            )
        if response.status_code == 404:
            raise NotFoundError(self.service_name, f"resource not found: {url}")
        if response.status_code >= 400:
            raise ApiResponseError(
                self.service_name, response.status_code, response.text, url=url,
            )

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(self.service_name, path, str(e) or type(e).__name__) from e

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        """GET with bounded retry; safe because GETs are idempotent.

        Returns the final response unchecked so callers can interpret 404.
        """
        attempt = 0
        while True:
            try:
                response = await self._send("GET", path, params=params)
            except TransportError as e:
                if attempt >= self._max_retries:
                    raise
                log.warning("GET %s failed (%s), retrying", path, e)
            else:
                if response.status_code not in _RETRY_STATUSES or attempt >= self._max_retries:
                    return response
                log.warning("GET %s returned %d, retrying", path, response.status_code)

            await asyncio.sleep(self._retry_backoff * 2**attempt)
            attempt += 1

    # Repository directory

    async def _fetch_repos_page(self, path: str, page: int) -> tuple[list[Repository], list[int]]:
        log.debug("calling url: %s?page=%d", path, page)
        response = await self._get(path, params={"page": page, "limit": self._page_size})
        self._handle_response(response)

        pages: list[int] = []
        if page <= 1:
            pages = parse_link(page, response.headers.get("link"))

        repositories = []
        for item in response.json():
            try:
                repositories.append(Repository.from_full_name(item.get("full_name", "")))
            except RepositoryParseError as e:
                log.warning("failed to parse repository: %s", e)
        return repositories, pages

    async def _fetch_all_repos(self, path: str) -> list[Repository]:
        repos, pages = await self._fetch_repos_page(path, 1)

        async def fetch_page(page: int) -> list[Repository]:
            new_repos, _ = await self._fetch_repos_page(path, page)
            return new_repos

        for page_repos in await gather_bounded(fetch_page, pages, self._concurrency):
            repos.extend(page_repos)
        return repos

    async def list_user_repositories(self, user: str) -> list[Repository]:
        """Repositories of the authenticated user.

        The API lists the token owner's repositories; ``user`` is only used
        for logging.
        """
        log.debug("fetching gitea repositories for user: %s", user)
        return await self._fetch_all_repos("/user/repos")

    async def list_org_repositories(self, org: str) -> list[Repository]:
        log.debug("fetching gitea repositories for org: %s", org)
        return await self._fetch_all_repos(f"/orgs/{org}/repos")

    # Capability probe

    async def has_renovate_config(self, repo: Repository) -> bool:
        """Whether the repository has a renovate config at its root."""
        log.debug("checking whether renovate is enabled for: %s", repo)
        response = await self._get(
            f"/repos/{repo.owner}/{repo.name}/contents/{self._config_path}",
        )
        if response.status_code == 404:
            log.debug("repository: %s, doesn't have renovate enabled", repo)
            return False
        self._handle_response(response)
        return True

    # Webhooks

    def _desired_webhook(self) -> dict:
        return CreateWebhook.desired(
            self._webhook_url, self._webhook_secret,
        ).model_dump(exclude_none=True)

    async def list_webhooks(self, repo: Repository) -> list[Webhook]:
        response = await self._get(f"/repos/{repo.owner}/{repo.name}/hooks")
        self._handle_response(response)
        return [Webhook.model_validate(item) for item in response.json()]

    async def get_owned_webhook(self, repo: Repository) -> Webhook | None:
        """Return the single contractor webhook on ``repo``, if present."""
        owned = [
            hook for hook in await self.list_webhooks(repo)
            if hook.is_owned_by(self._webhook_marker)
        ]
        if len(owned) > 1:
            raise DuplicateWebhookError(repo.full_name, [hook.id for hook in owned])
        return owned[0] if owned else None

    async def create_webhook(self, repo: Repository) -> None:
        path = f"/repos/{repo.owner}/{repo.name}/hooks"
        body = self._desired_webhook()
        log.debug("calling url: %s with body %s", path, body)
        try:
            response = await self._send("POST", path, json=body)
        except TransportError:
            # The hook may have been created before the connection dropped
            if await self.get_owned_webhook(repo) is not None:
                log.info("webhook for %s exists after failed create, treating as created", repo)
                return
            raise
        self._handle_response(response)

    async def update_webhook(self, repo: Repository, webhook: Webhook) -> None:
        path = f"/repos/{repo.owner}/{repo.name}/hooks/{webhook.id}"
        body = self._desired_webhook()
        log.debug("calling url: %s with body %s", path, body)
        response = await self._send("PATCH", path, json=body)
        self._handle_response(response)

    async def ensure_webhook(self, repo: Repository, force_refresh: bool) -> ReconcileDecision:
        """Create, refresh or leave alone the contractor webhook on ``repo``."""
        log.debug("ensuring webhook exists for repo: %s", repo)
        existing = await self.get_owned_webhook(repo)
        decision = decide(existing, force_refresh)

        if decision is ReconcileDecision.CREATE:
            log.debug("webhook was not found for %s adding", repo)
            await self.create_webhook(repo)
        elif decision is ReconcileDecision.UPDATE:
            log.debug("webhook already found for %s refreshing it", repo)
            await self.update_webhook(repo, existing)
        else:
            log.debug("webhook already found for %s skipping...", repo)
        return decision

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "GiteaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

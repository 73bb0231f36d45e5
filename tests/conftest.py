"""Shared test fixtures for contractor."""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
import pytest

from contractor.clients.gitea import GiteaClient
from contractor.errors import ApiResponseError
from contractor.models.gitea import ReconcileDecision, Repository, Webhook, decide

BASE_URL = "http://gitea.test"
MARKER = "/webhooks/gitea?type=contractor"
WEBHOOK_URL = f"http://contractor.test{MARKER}"


@dataclass
class FakeGitea:
    """In-memory Gitea API served through ``httpx.MockTransport``."""

    user_repos: list[str] = field(default_factory=list)
    org_repos: dict[str, list[str]] = field(default_factory=dict)
    configs: set[str] = field(default_factory=set)
    hooks: dict[str, list[dict]] = field(default_factory=dict)
    # (method, path) -> statuses returned instead of the normal answer, consumed in order
    failures: dict[tuple[str, str], list[int]] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    next_hook_id: int = 100
    # Consulted before the normal routes; returning None falls through
    override: Callable[[httpx.Request], httpx.Response | None] | None = None

    def calls_to(self, method: str) -> list[str]:
        return [path for m, path in self.calls if m == method]

    def _listing(self, request: httpx.Request, names: list[str]) -> httpx.Response:
        page = int(request.url.params.get("page", "1"))
        limit = int(request.url.params.get("limit", "50"))
        last = max(1, math.ceil(len(names) / limit))
        items = [{"full_name": n} for n in names[(page - 1) * limit:page * limit]]

        base = f"{BASE_URL}{request.url.path}"
        links = []
        if page < last:
            links.append(f'<{base}?page={page + 1}&limit={limit}>; rel="next"')
        links.append(f'<{base}?page={last}&limit={limit}>; rel="last"')
        return httpx.Response(200, json=items, headers={"link": ",".join(links)})

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        self.calls.append((request.method, path))

        if self.override is not None:
            response = self.override(request)
            if response is not None:
                return response

        forced = self.failures.get((request.method, path))
        if forced:
            return httpx.Response(forced.pop(0), text="forced failure")

        parts = path.strip("/").split("/")
        if path == "/user/repos":
            return self._listing(request, self.user_repos)
        if parts[0] == "orgs" and parts[2:] == ["repos"]:
            return self._listing(request, self.org_repos.get(parts[1], []))
        if parts[0] == "repos":
            full_name = f"{parts[1]}/{parts[2]}"
            rest = parts[3:]
            if rest[:1] == ["contents"]:
                if full_name in self.configs:
                    return httpx.Response(200, json={"name": rest[-1]})
                return httpx.Response(404, json={"message": "not found"})
            if rest == ["hooks"] and request.method == "GET":
                return httpx.Response(200, json=self.hooks.get(full_name, []))
            if rest == ["hooks"] and request.method == "POST":
                body = json.loads(request.content)
                hook = {"id": self.next_hook_id, "type": body["type"], "config": body["config"]}
                self.next_hook_id += 1
                self.hooks.setdefault(full_name, []).append(hook)
                return httpx.Response(201, json=hook)
            if rest[:1] == ["hooks"] and request.method == "PATCH":
                hook_id = int(rest[1])
                for hook in self.hooks.get(full_name, []):
                    if hook["id"] == hook_id:
                        hook["config"] = json.loads(request.content)["config"]
                        return httpx.Response(200, json=hook)
                return httpx.Response(404, json={"message": "hook not found"})
        return httpx.Response(404, json={"message": "no route"})


def owned_hook(hook_id: int) -> dict:
    return {"id": hook_id, "type": "gitea", "config": {"url": WEBHOOK_URL}}


@pytest.fixture
def gitea() -> FakeGitea:
    return FakeGitea()


@pytest.fixture
async def client(gitea: FakeGitea):
    c = GiteaClient(
        BASE_URL,
        "test-token",
        webhook_url=WEBHOOK_URL,
        webhook_marker=MARKER,
        webhook_secret="s3cret",
        retry_backoff=0,
        transport=httpx.MockTransport(gitea.handler),
    )
    yield c
    await c.close()


class FakeHost:
    """In-memory double of the host capabilities the reconciler uses."""

    def __init__(
        self,
        user_repos: list[str] | None = None,
        org_repos: dict[str, list[str]] | None = None,
        configs: set[str] | None = None,
        hooks: dict[str, Webhook] | None = None,
    ) -> None:
        self.user_repos = [Repository.from_full_name(n) for n in user_repos or []]
        self.org_repos = {
            org: [Repository.from_full_name(n) for n in names]
            for org, names in (org_repos or {}).items()
        }
        self.configs = configs or set()
        self.hooks = hooks or {}
        self.probe_failures: set[str] = set()
        self.hook_failures: set[str] = set()
        self.probed: list[str] = []
        self.created: list[str] = []
        self.updated: list[tuple[str, int]] = []
        self.listing_calls = 0

    async def list_user_repositories(self, user: str) -> list[Repository]:
        self.listing_calls += 1
        return list(self.user_repos)

    async def list_org_repositories(self, org: str) -> list[Repository]:
        self.listing_calls += 1
        return list(self.org_repos.get(org, []))

    async def has_renovate_config(self, repo: Repository) -> bool:
        self.probed.append(repo.full_name)
        if repo.full_name in self.probe_failures:
            raise ApiResponseError("gitea", 500, "boom")
        return repo.full_name in self.configs

    async def get_owned_webhook(self, repo: Repository) -> Webhook | None:
        return self.hooks.get(repo.full_name)

    async def ensure_webhook(self, repo: Repository, force_refresh: bool) -> ReconcileDecision:
        if repo.full_name in self.hook_failures:
            raise ApiResponseError("gitea", 422, "invalid hook")
        existing = await self.get_owned_webhook(repo)
        decision = decide(existing, force_refresh)
        if decision is ReconcileDecision.CREATE:
            self.created.append(repo.full_name)
        elif decision is ReconcileDecision.UPDATE:
            self.updated.append((repo.full_name, existing.id))
        return decision

"""Tests for repository, webhook and decision models."""

from __future__ import annotations

import pytest

from contractor.errors import RepositoryParseError
from contractor.models.gitea import (
    CreateWebhook,
    ReconcileDecision,
    ReconcileSummary,
    Repository,
    Webhook,
    decide,
)

MARKER = "/webhooks/gitea?type=contractor"


class TestRepository:
    def test_from_full_name(self) -> None:
        repo = Repository.from_full_name("kjuulh/contractor")
        assert repo.owner == "kjuulh"
        assert repo.name == "contractor"
        assert str(repo) == "kjuulh/contractor"

    @pytest.mark.parametrize("full_name", ["no-slash-here", "", "/name", "owner/"])
    def test_invalid_full_name(self, full_name: str) -> None:
        with pytest.raises(RepositoryParseError):
            Repository.from_full_name(full_name)

    def test_equality_and_hash_by_owner_and_name(self) -> None:
        a = Repository(owner="a", name="r1")
        b = Repository.from_full_name("a/r1")
        assert a == b
        assert len({a, b, Repository(owner="a", name="r2")}) == 2

    def test_immutable(self) -> None:
        repo = Repository(owner="a", name="r1")
        with pytest.raises(Exception):
            repo.name = "r2"


class TestWebhookOwnership:
    def test_native_hook_with_marker_is_owned(self) -> None:
        hook = Webhook.model_validate(
            {"id": 1, "type": "gitea", "config": {"url": f"https://c.example{MARKER}"}}
        )
        assert hook.is_owned_by(MARKER)

    def test_other_type_is_not_owned(self) -> None:
        hook = Webhook(id=1, type="slack", config={"url": f"https://c.example{MARKER}"})
        assert not hook.is_owned_by(MARKER)

    def test_native_hook_without_marker_is_not_owned(self) -> None:
        hook = Webhook(id=1, type="gitea", config={"url": "https://ci.example/hook"})
        assert not hook.is_owned_by(MARKER)


class TestDecision:
    def test_missing_hook_is_created(self) -> None:
        assert decide(None, False) is ReconcileDecision.CREATE
        assert decide(None, True) is ReconcileDecision.CREATE

    def test_existing_hook_is_skipped(self) -> None:
        assert decide(Webhook(id=3, type="gitea"), False) is ReconcileDecision.SKIP

    def test_existing_hook_is_updated_on_force_refresh(self) -> None:
        assert decide(Webhook(id=3, type="gitea"), True) is ReconcileDecision.UPDATE


class TestDesiredWebhook:
    def test_body_shape(self) -> None:
        body = CreateWebhook.desired("https://c.example/hook", "secret").model_dump()
        assert body == {
            "active": True,
            "authorization_header": "secret",
            "branch_filter": "*",
            "config": {"content_type": "json", "url": "https://c.example/hook"},
            "events": ["pull_request_comment", "issue_comment"],
            "type": "gitea",
        }

    def test_empty_secret_is_omitted(self) -> None:
        body = CreateWebhook.desired("https://c.example/hook", "").model_dump(exclude_none=True)
        assert "authorization_header" not in body


class TestSummary:
    def test_record_and_ok(self) -> None:
        summary = ReconcileSummary()
        summary.record(Repository(owner="a", name="r1"), ReconcileDecision.CREATE)
        summary.record(Repository(owner="a", name="r2"), ReconcileDecision.SKIP)
        assert summary.created == ["a/r1"]
        assert summary.skipped == ["a/r2"]
        assert summary.ok

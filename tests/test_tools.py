"""Integration tests for MCP tool handlers using in-memory SQLite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conftest import count_records
from onboarding_guard.tools import (
    create_onboarding,
    get_onboarding,
    list_onboardings,
    submit_for_review,
    update_onboarding,
)

if TYPE_CHECKING:
    from conftest import MockContext


class TestCreateOnboarding:
    async def test_germany_without_email_rejected(self, ctx: MockContext) -> None:
        result = await create_onboarding.fn(country="DE", email="", ctx=ctx)
        assert result == {
            "error": "Email is mandatory for customers in Germany",
            "status": 400,
        }
        assert await count_records(ctx.lifespan_context.db) == 0

    async def test_germany_email_omitted_rejected(self, ctx: MockContext) -> None:
        result = await create_onboarding.fn(country="DE", ctx=ctx)
        assert result["status"] == 400
        assert await count_records(ctx.lifespan_context.db) == 0

    async def test_other_country_without_email_defaults_to_draft(
        self, ctx: MockContext
    ) -> None:
        result = await create_onboarding.fn(country="FR", ctx=ctx)
        assert result["status"] == "DRAFT"
        assert result["country"] == "FR"
        assert result["email"] is None
        assert await count_records(ctx.lifespan_context.db) == 1

    async def test_create_persists_to_db(self, ctx: MockContext) -> None:
        result = await create_onboarding.fn(country="DE", email="a@b.com", ctx=ctx)
        cursor = await ctx.lifespan_context.db.execute(
            "SELECT country, email, status FROM customer_onboardings WHERE id = ?",
            (result["id"],),
        )
        row = await cursor.fetchone()
        assert (row["country"], row["email"], row["status"]) == ("DE", "a@b.com", "DRAFT")

    async def test_create_generates_unique_ids(self, ctx: MockContext) -> None:
        r1 = await create_onboarding.fn(country="FR", ctx=ctx)
        r2 = await create_onboarding.fn(country="FR", ctx=ctx)
        assert r1["id"] != r2["id"]

    async def test_invalid_status_rejected(self, ctx: MockContext) -> None:
        result = await create_onboarding.fn(country="FR", status="APPROVED", ctx=ctx)
        assert result["status"] == 400
        assert "Invalid field 'status'" in result["error"]


class TestUpdateOnboarding:
    async def test_update_only_writes_supplied_fields(self, ctx: MockContext) -> None:
        created = await create_onboarding.fn(country="FR", email="a@b.fr", ctx=ctx)
        result = await update_onboarding.fn(
            onboarding_id=created["id"], email="new@b.fr", ctx=ctx
        )
        assert result["country"] == "FR"
        assert result["email"] == "new@b.fr"

    async def test_update_to_germany_requires_email(self, ctx: MockContext) -> None:
        created = await create_onboarding.fn(country="FR", email="a@b.fr", ctx=ctx)
        result = await update_onboarding.fn(onboarding_id=created["id"], country="DE", ctx=ctx)
        assert result == {
            "error": "Email is mandatory for customers in Germany",
            "status": 400,
        }
        current = await get_onboarding.fn(onboarding_id=created["id"], ctx=ctx)
        assert current["country"] == "FR"

    async def test_update_unknown_id(self, ctx: MockContext) -> None:
        result = await update_onboarding.fn(onboarding_id="missing", email="x@y.z", ctx=ctx)
        assert result == {"error": "Customer onboarding request not found", "status": 404}


class TestSubmitForReview:
    async def test_unknown_id(self, ctx: MockContext) -> None:
        result = await submit_for_review.fn(onboarding_id="missing", ctx=ctx)
        assert result == {"error": "Customer onboarding request not found", "status": 404}
        assert await count_records(ctx.lifespan_context.db) == 0

    async def test_blank_id_not_found(self, ctx: MockContext) -> None:
        result = await submit_for_review.fn(onboarding_id="", ctx=ctx)
        assert result == {"error": "Customer onboarding request not found", "status": 404}

    async def test_missing_context_raises(self) -> None:
        with pytest.raises(RuntimeError, match="Missing MCP context"):
            await submit_for_review.fn(onboarding_id="r1", ctx=None)

    async def test_submit_then_resubmit(self, ctx: MockContext) -> None:
        created = await create_onboarding.fn(country="DE", email="a@b.com", ctx=ctx)
        assert created["status"] == "DRAFT"

        result = await submit_for_review.fn(onboarding_id=created["id"], ctx=ctx)
        assert result == {"id": created["id"], "status": "SUBMITTED"}

        again = await submit_for_review.fn(onboarding_id=created["id"], ctx=ctx)
        assert again == {"error": "Request already submitted", "status": 400}

        current = await get_onboarding.fn(onboarding_id=created["id"], ctx=ctx)
        assert current["status"] == "SUBMITTED"


class TestReadTools:
    async def test_get_unknown(self, ctx: MockContext) -> None:
        result = await get_onboarding.fn(onboarding_id="missing", ctx=ctx)
        assert result["status"] == 404

    async def test_list_empty(self, ctx: MockContext) -> None:
        assert await list_onboardings.fn(ctx=ctx) == {"records": [], "count": 0}

    async def test_list_by_status(self, ctx: MockContext) -> None:
        draft = await create_onboarding.fn(country="FR", ctx=ctx)
        submitted = await create_onboarding.fn(country="DE", email="a@b.de", ctx=ctx)
        await submit_for_review.fn(onboarding_id=submitted["id"], ctx=ctx)

        result = await list_onboardings.fn(status="DRAFT", ctx=ctx)
        assert [r["id"] for r in result["records"]] == [draft["id"]]

        result = await list_onboardings.fn(status="SUBMITTED", country="DE", ctx=ctx)
        assert [r["id"] for r in result["records"]] == [submitted["id"]]

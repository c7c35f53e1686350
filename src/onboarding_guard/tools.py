"""MCP tool definitions for the Onboarding Guard."""

from __future__ import annotations

from fastmcp import Context

from onboarding_guard.db import AppContext
from onboarding_guard.router import (
    CREATE,
    LIST,
    READ,
    SUBMIT_FOR_REVIEW,
    UPDATE,
    Request,
)
from onboarding_guard.server import caller_tag, mcp


def mcp_tool(fn):
    """Register *fn* as an MCP tool; the coroutine stays callable as ``.fn``."""
    return mcp.tool(fn)


def _app_ctx(ctx: Context) -> AppContext:
    """Resolve the guard AppContext from the request's FastMCP Context."""
    if ctx is None:
        raise RuntimeError("Missing MCP context")
    return ctx.request_context.lifespan_context


def _resolve_caller(caller_id: str | None) -> str:
    """Derive caller tag from an optional caller_id parameter."""
    if not caller_id or caller_id.strip() == "":
        return "guard"
    return caller_id.strip()


def _supplied(**fields: str | None) -> dict[str, str]:
    """Keep only the arguments the caller actually passed."""
    return {name: value for name, value in fields.items() if value is not None}


async def _dispatch(ctx: Context, request: Request) -> dict:
    app = _app_ctx(ctx)
    return await app.router.dispatch(app.store, request)


@mcp_tool
async def create_onboarding(
    country: str | None = None,
    email: str | None = None,
    status: str | None = None,
    caller_id: str | None = None,
    ctx: Context = None,
) -> dict:
    """Create a customer onboarding request.

    The request starts in DRAFT unless status is given. Customers in Germany
    (country='DE') must supply a non-empty email. Returns the stored record,
    or {"error", "status"} when the write is rejected.
    """
    caller_tag.set(_resolve_caller(caller_id))
    request = Request(CREATE, _supplied(country=country, email=email, status=status))
    return await _dispatch(ctx, request)


@mcp_tool
async def update_onboarding(
    onboarding_id: str,
    country: str | None = None,
    email: str | None = None,
    status: str | None = None,
    caller_id: str | None = None,
    ctx: Context = None,
) -> dict:
    """Update fields of an existing onboarding request.

    Only the arguments passed are written. The Germany email rule is checked
    against the fields of this update.
    """
    caller_tag.set(_resolve_caller(caller_id))
    request = Request(
        UPDATE,
        _supplied(country=country, email=email, status=status),
        record_id=onboarding_id,
    )
    return await _dispatch(ctx, request)


@mcp_tool
async def submit_for_review(
    onboarding_id: str,
    caller_id: str | None = None,
    ctx: Context = None,
) -> dict:
    """Submit a DRAFT onboarding request for review.

    Returns {"id", "status": "SUBMITTED"}. Submitting an already submitted
    request is rejected with status 400; an unknown id with status 404.
    """
    caller_tag.set(_resolve_caller(caller_id))
    return await _dispatch(ctx, Request(SUBMIT_FOR_REVIEW, record_id=onboarding_id))


@mcp_tool
async def get_onboarding(
    onboarding_id: str,
    caller_id: str | None = None,
    ctx: Context = None,
) -> dict:
    """Fetch one onboarding request by id."""
    caller_tag.set(_resolve_caller(caller_id))
    return await _dispatch(ctx, Request(READ, record_id=onboarding_id))


@mcp_tool
async def list_onboardings(
    status: str | None = None,
    country: str | None = None,
    caller_id: str | None = None,
    ctx: Context = None,
) -> dict:
    """List onboarding requests, optionally filtered by status and/or country.

    Ordered by creation time.
    """
    caller_tag.set(_resolve_caller(caller_id))
    return await _dispatch(ctx, Request(LIST, _supplied(status=status, country=country)))

"""Pre-write validation hooks for onboarding creates and updates."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import pydantic

from onboarding_guard.db import ENTITY, Transaction
from onboarding_guard.errors import (
    EMAIL_REQUIRED_FOR_GERMANY,
    ONBOARDING_NOT_FOUND,
    NotFoundError,
    ValidationError,
)
from onboarding_guard.models import OnboardingWrite

if TYPE_CHECKING:
    from onboarding_guard.router import Request

EMAIL_MANDATORY_COUNTRIES = frozenset({"DE"})


def parse_write(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return only the supplied fields of a write, normalized.

    Raises ValidationError for unknown fields or malformed values.
    """
    try:
        parsed = OnboardingWrite.model_validate(dict(data))
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "payload"
        raise ValidationError(f"Invalid field '{location}': {first['msg']}") from None
    return parsed.model_dump(mode="json", exclude_unset=True)


def check_email_for_country(fields: Mapping[str, Any]) -> None:
    """Reject a write that sets country DE without a non-empty email.

    Only the fields present in this write are inspected, so an update that
    omits country is never caught here.
    """
    if fields.get("country") in EMAIL_MANDATORY_COUNTRIES and not fields.get("email"):
        raise ValidationError(EMAIL_REQUIRED_FOR_GERMANY)


async def check_write_shape(request: Request, tx: Transaction) -> None:
    del tx
    parse_write(request.data)


async def validate_write(request: Request, tx: Transaction) -> None:
    """Default create/update hook: check the written fields only."""
    del tx
    check_email_for_country(request.data)


async def validate_merged_write(request: Request, tx: Transaction) -> None:
    """Create/update hook that checks the stored record merged with the write."""
    if request.record_id is None:
        check_email_for_country(request.data)
        return
    rows = await tx.read(ENTITY, {"id": request.record_id})
    if not rows:
        raise NotFoundError(ONBOARDING_NOT_FOUND)
    check_email_for_country({**rows[0], **request.data})

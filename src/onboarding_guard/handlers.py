"""Operation handlers for onboarding records.

Every handler receives the request and the transaction opened for it by the
router, and either returns a result dict or raises a GuardError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from onboarding_guard.db import ENTITY, Transaction
from onboarding_guard.errors import (
    ALREADY_SUBMITTED,
    ONBOARDING_NOT_FOUND,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from onboarding_guard.models import OnboardingRecord, OnboardingStatus
from onboarding_guard.state_machine import validate_transition
from onboarding_guard.validator import parse_write

if TYPE_CHECKING:
    from onboarding_guard.router import Request

logger = logging.getLogger("onboarding_guard")

LIST_FILTERS = ("status", "country")


def _short(record_id: str | None) -> str:
    """Render compact record IDs in logs."""
    if not record_id:
        return "unknown"
    return record_id[:8]


def _require_id(request: Request) -> str:
    # A blank id can never match a stored record.
    if not request.record_id:
        raise NotFoundError(ONBOARDING_NOT_FOUND)
    return request.record_id


async def _fetch(tx: Transaction, record_id: str) -> OnboardingRecord:
    rows = await tx.read(ENTITY, {"id": record_id})
    if not rows:
        raise NotFoundError(ONBOARDING_NOT_FOUND)
    return OnboardingRecord.model_validate(rows[0])


async def submit_for_review(request: Request, tx: Transaction) -> dict:
    """Move a DRAFT request to SUBMITTED.

    The read, the legality check and the write share the request transaction,
    so concurrent submits on the same id serialize on the store's write lock.
    A repeat submit is rejected rather than silently accepted.
    """
    record_id = _require_id(request)
    record = await _fetch(tx, record_id)
    try:
        validate_transition(record.status, OnboardingStatus.SUBMITTED)
    except ValueError:
        raise ConflictError(ALREADY_SUBMITTED) from None
    await tx.update(ENTITY, {"id": record_id}, {"status": str(OnboardingStatus.SUBMITTED)})
    logger.info(
        "SubmitForReview -> %s %s -> %s",
        _short(record_id),
        record.status,
        OnboardingStatus.SUBMITTED,
    )
    return {"id": record_id, "status": OnboardingStatus.SUBMITTED}


async def create_record(request: Request, tx: Transaction) -> dict:
    fields = parse_write(request.data)
    if fields.get("status") is None:
        fields["status"] = str(OnboardingStatus.DRAFT)
    row = await tx.insert(ENTITY, fields)
    record = OnboardingRecord.model_validate(row)
    logger.info(
        "create -> %s new (country=%s, status=%s)",
        _short(record.id),
        record.country,
        record.status,
    )
    return record.model_dump(mode="json")


async def update_record(request: Request, tx: Transaction) -> dict:
    record_id = _require_id(request)
    fields = parse_write(request.data)
    if "status" in fields and fields["status"] is None:
        raise ValidationError("Invalid field 'status': status cannot be null")
    changed = await tx.update(ENTITY, {"id": record_id}, fields) if fields else None
    if changed == 0:
        raise NotFoundError(ONBOARDING_NOT_FOUND)
    record = await _fetch(tx, record_id)
    logger.info(
        "update -> %s fields=%s",
        _short(record_id),
        sorted(fields),
    )
    return record.model_dump(mode="json")


async def read_record(request: Request, tx: Transaction) -> dict:
    record = await _fetch(tx, _require_id(request))
    logger.info("read -> %s %s", _short(record.id), record.status)
    return record.model_dump(mode="json")


async def list_records(request: Request, tx: Transaction) -> dict:
    unknown = sorted(set(request.data) - set(LIST_FILTERS))
    if unknown:
        raise ValidationError(f"Unsupported filters: {unknown}")
    where = {key: value for key, value in request.data.items() if value is not None}
    if "status" in where:
        try:
            where["status"] = str(OnboardingStatus(where["status"]))
        except ValueError:
            raise ValidationError(f"Invalid field 'status': {where['status']!r}") from None
    rows = await tx.read(ENTITY, where)
    records = [OnboardingRecord.model_validate(row).model_dump(mode="json") for row in rows]
    logger.info("list -> %s records (filters=%s)", len(records), where or "none")
    return {"records": records, "count": len(records)}

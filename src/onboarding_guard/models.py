"""Pydantic models and enums for the Onboarding Guard."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class OnboardingStatus(StrEnum):
    """Onboarding request lifecycle states."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"


class OnboardingWrite(BaseModel):
    """Proposed field set of a create or update.

    Only fields the caller supplied count as present; use
    ``model_dump(exclude_unset=True)`` to get them.
    """

    model_config = ConfigDict(extra="forbid")

    country: str | None = Field(default=None, description="ISO country code, e.g. 'DE'")
    email: str | None = None
    status: OnboardingStatus | None = None


class OnboardingRecord(BaseModel):
    """A stored customer onboarding request."""

    id: str = Field(description="Assigned by the record store on create")
    country: str | None = None
    email: str | None = None
    status: OnboardingStatus = OnboardingStatus.DRAFT
    created_at: str | None = None
    updated_at: str | None = None

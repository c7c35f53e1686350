"""Onboarding guard configuration schema."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

CONFIG_SECTION = "onboarding_guard"


class GuardConfig(BaseModel):
    """Validated guard runtime configuration."""

    model_config = ConfigDict(extra="forbid")

    validate_merged_updates: bool = Field(
        default=False,
        description=(
            "Check the mandatory-email rule against the stored record merged with "
            "the update instead of the written fields only."
        ),
    )


def load_guard_config(config_path: str | Path) -> GuardConfig | None:
    """Load guard config from a JSON file.

    Returns:
    - None when the onboarding_guard section is missing or null.
    - GuardConfig when the section exists and validates.
    Raises:
    - FileNotFoundError if config file is missing.
    - pydantic ValidationError on invalid values.
    - json.JSONDecodeError for malformed JSON.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(path)

    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("config file must contain a JSON object")
    section = payload.get(CONFIG_SECTION)
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ValueError(f"{CONFIG_SECTION} must be an object when provided")

    return GuardConfig.model_validate(section)

"""State machine for the onboarding request lifecycle."""

from __future__ import annotations

from onboarding_guard.models import OnboardingStatus

VALID_TRANSITIONS: dict[OnboardingStatus, set[OnboardingStatus]] = {
    OnboardingStatus.DRAFT: {OnboardingStatus.SUBMITTED},  # SubmitForReview
    OnboardingStatus.SUBMITTED: set(),  # terminal
}


def allowed_targets(current: OnboardingStatus | str) -> set[OnboardingStatus]:
    """Return the states reachable from *current*. Raises ValueError for unknown states."""
    try:
        state = OnboardingStatus(current)
    except ValueError:
        raise ValueError(f"Unknown onboarding state: {current!r}") from None
    return VALID_TRANSITIONS[state]


def validate_transition(current: OnboardingStatus | str, target: OnboardingStatus) -> None:
    """Raise ValueError when *target* is not reachable from *current*."""
    if target not in allowed_targets(current):
        raise ValueError(f"Illegal onboarding transition: {current} -> {target}")

"""Decide which duration a lecture update may persist."""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Optional

from ..config import DurationPolicy
from .duration import round_seconds

LOGGER = logging.getLogger(__name__)


class UpdateOrigin(str, enum.Enum):
    """Where a lecture update came from."""

    LECTURE_API = "lecture_api"
    UPLOAD_MERGE = "upload_merge"


class DurationAction(str, enum.Enum):
    ACCEPT = "accept"
    KEEP_EXISTING = "keep_existing"
    DROP = "drop"


@dataclass(frozen=True)
class DurationDecision:
    action: DurationAction
    value: Optional[int]
    reason: str

    @property
    def persists(self) -> bool:
        return self.value is not None


def sanitize_incoming_duration(
    duration: Optional[float], policy: DurationPolicy
) -> Optional[float]:
    """Strip durations above ``suspicious_seconds`` from plain lecture edits."""

    if duration is None:
        return None
    if duration > policy.suspicious_seconds:
        LOGGER.info(
            "Discarding incoming duration %s above %ss from lecture update payload",
            duration,
            policy.suspicious_seconds,
        )
        return None
    return duration


def _within(value: Optional[int], upper: int) -> bool:
    return value is not None and 0 < value < upper


class LectureDurationReconciler:
    """Pick the duration to store given the candidate, the stored value and origin."""

    def __init__(self, policy: DurationPolicy) -> None:
        self._policy = policy

    def _fallback(self, existing: Optional[int], reason: str) -> DurationDecision:
        if _within(existing, self._policy.max_seconds):
            return DurationDecision(DurationAction.KEEP_EXISTING, existing, reason)
        return DurationDecision(DurationAction.DROP, None, reason)

    def decide(
        self,
        candidate: Optional[float],
        existing: Optional[int],
        *,
        origin: UpdateOrigin,
    ) -> DurationDecision:
        policy = self._policy
        from_upload = origin is UpdateOrigin.UPLOAD_MERGE

        if candidate is None:
            return DurationDecision(DurationAction.DROP, None, "no candidate duration")

        if _within(existing, policy.suspicious_seconds) and not from_upload:
            decision = DurationDecision(
                DurationAction.KEEP_EXISTING,
                existing,
                "existing duration is plausible and update is not from an upload",
            )
        elif math.isnan(candidate) or math.isinf(candidate):
            decision = self._fallback(existing, "candidate duration is not a number")
        elif candidate > policy.max_seconds:
            decision = self._fallback(existing, f"candidate exceeds {policy.max_seconds}s")
        elif round_seconds(candidate) <= 0:
            decision = self._fallback(existing, "candidate duration is not positive")
        else:
            seconds = round_seconds(candidate)
            if from_upload and seconds != existing:
                decision = DurationDecision(
                    DurationAction.ACCEPT, seconds, "upload merge supplied a new duration"
                )
            elif seconds > policy.suspicious_seconds and not from_upload and _within(
                existing, policy.suspicious_seconds
            ):
                decision = DurationDecision(
                    DurationAction.KEEP_EXISTING,
                    existing,
                    f"candidate above {policy.suspicious_seconds}s from a non-upload source",
                )
            else:
                decision = DurationDecision(DurationAction.ACCEPT, seconds, "candidate accepted")

        LOGGER.info(
            "Duration decision (%s): candidate=%s existing=%s -> %s %s (%s)",
            origin.value,
            candidate,
            existing,
            decision.action.value,
            decision.value,
            decision.reason,
        )
        return decision


__all__ = [
    "DurationAction",
    "DurationDecision",
    "LectureDurationReconciler",
    "UpdateOrigin",
    "sanitize_incoming_duration",
]

"""Remediation: plan fix-ups, apply them under guardrails, verify the result."""

from .patch import (
    CLEARED,
    PatchFailedRow,
    PatchOptions,
    PatchResult,
    PatchSkippedRow,
    PatchStatus,
    PatchSummary,
    PatchUpdatedRow,
    SkipReason,
    ensure_work_phone_address,
    execute_plan,
    missing_items,
    patch_missing,
    target_number,
)
from .plan import FixupAction, FixupCategory, FixupItem, FixupPlan, available_numbers, build_plan
from .verify import (
    VerificationItem,
    VerificationResult,
    VerificationStatus,
    numbers_match,
    verify,
)

__all__ = [
    "CLEARED",
    "FixupAction",
    "FixupCategory",
    "FixupItem",
    "FixupPlan",
    "PatchFailedRow",
    "PatchOptions",
    "PatchResult",
    "PatchSkippedRow",
    "PatchStatus",
    "PatchSummary",
    "PatchUpdatedRow",
    "SkipReason",
    "VerificationItem",
    "VerificationResult",
    "VerificationStatus",
    "available_numbers",
    "build_plan",
    "ensure_work_phone_address",
    "execute_plan",
    "missing_items",
    "numbers_match",
    "patch_missing",
    "target_number",
    "verify",
]

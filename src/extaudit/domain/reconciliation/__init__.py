"""Reconciliation of profile numbers against ownership records.

Flow:
1) page users and ownership records into an immutable audit context
2) derive duplicate/discrepancy/missing findings and user issues from that context
3) summarise the findings as a dry-run report for review
"""

from __future__ import annotations

from .context import (
    DEFAULT_RECORDS_PAGE_SIZE,
    DEFAULT_USERS_PAGE_SIZE,
    RECORDS_PAGE_SIZE_MAX,
    USERS_PAGE_SIZE_MAX,
    AuditAuthorizationError,
    AuditContextError,
    assemble_context,
    build_context,
)
from .findings import (
    Discrepancy,
    DiscrepancyIssue,
    DuplicateExtensionRecord,
    DuplicateUserAssignment,
    Findings,
    MissingAssignment,
    UserIssue,
    UserIssueKind,
    discrepancies,
    duplicate_extension_records,
    duplicate_user_assignments,
    find_all,
    missing_assignments,
    user_issues,
)
from .report import (
    ContextSummary,
    DryRunAction,
    DryRunReport,
    DryRunRow,
    build_dry_run_report,
    summarize,
)

__all__ = [
    "DEFAULT_RECORDS_PAGE_SIZE",
    "DEFAULT_USERS_PAGE_SIZE",
    "RECORDS_PAGE_SIZE_MAX",
    "USERS_PAGE_SIZE_MAX",
    "AuditAuthorizationError",
    "AuditContextError",
    "ContextSummary",
    "Discrepancy",
    "DiscrepancyIssue",
    "DryRunAction",
    "DryRunReport",
    "DryRunRow",
    "DuplicateExtensionRecord",
    "DuplicateUserAssignment",
    "Findings",
    "MissingAssignment",
    "UserIssue",
    "UserIssueKind",
    "assemble_context",
    "build_context",
    "build_dry_run_report",
    "discrepancies",
    "duplicate_extension_records",
    "duplicate_user_assignments",
    "find_all",
    "missing_assignments",
    "summarize",
    "user_issues",
]

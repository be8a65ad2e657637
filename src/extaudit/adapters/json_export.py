"""JSON report exporter used by the command line."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic_core import to_json

from extaudit.domain.ports.reporting import ReportExporter
from extaudit.domain.reconciliation.report import summarize

if TYPE_CHECKING:
    from collections.abc import Callable

    from extaudit.domain.types import AuditContext


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JsonReportExporter:
    """Wrap any result payload with the snapshot summary and serialise it as JSON."""

    def __init__(self, *, indent: int | None = 2, clock: Callable[[], datetime] = _utcnow) -> None:
        self._indent = indent
        self._clock = clock

    def export(self, context: AuditContext, payload: object) -> bytes:
        document = {
            "generated_at": self._clock(),
            "summary": summarize(context),
            "payload": payload,
        }
        return to_json(document, indent=self._indent)


if TYPE_CHECKING:
    _exporter_check: ReportExporter = JsonReportExporter()

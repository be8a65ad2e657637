"""Collaborator ports: progress reporting and report export."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from extaudit.domain.types import AuditContext

type ProgressSink = Callable[[str], None]


def report_progress(sink: ProgressSink | None, stage: str) -> None:
    if sink is not None:
        sink(stage)


class QueueProgress:
    """Progress sink that never blocks the workflow; stages are dropped when the queue is full."""

    def __init__(self, queue: asyncio.Queue[str] | None = None, *, maxsize: int = 256) -> None:
        self.queue: asyncio.Queue[str] = queue if queue is not None else asyncio.Queue(maxsize)
        self.dropped = 0

    def __call__(self, stage: str) -> None:
        try:
            self.queue.put_nowait(stage)
        except asyncio.QueueFull:
            self.dropped += 1

    def drain(self) -> list[str]:
        stages: list[str] = []
        while not self.queue.empty():
            stages.append(self.queue.get_nowait())
        return stages


@runtime_checkable
class ReportExporter(Protocol):
    """Serialises findings or patch results for an audit snapshot."""

    def export(self, context: AuditContext, payload: object) -> bytes: ...


__all__ = ["ProgressSink", "QueueProgress", "ReportExporter", "report_progress"]

from __future__ import annotations

import asyncio
import logging

import pytest

from extaudit.domain.ports import ApiStatusError, VersionConflictError
from extaudit.domain.reconciliation import assemble_context
from extaudit.domain.remediation import (
    CLEARED,
    FixupAction,
    FixupCategory,
    FixupItem,
    PatchOptions,
    PatchResult,
    PatchStatus,
    SkipReason,
    build_plan,
    ensure_work_phone_address,
    execute_plan,
    missing_items,
    patch_missing,
)
from extaudit.domain.types import Address, AuditContext, AuditKind, UserRecord
from tests.helpers.directory import (
    FakeDirectory,
    make_user,
    scenario_records,
    scenario_users,
)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _item(
    user_id: str,
    *,
    action: FixupAction = FixupAction.ASSIGN_SPECIFIC,
    current: str | None = "100",
    recommended: str | None = "900",
    category: FixupCategory = FixupCategory.MISSING,
) -> FixupItem:
    return FixupItem(
        category=category,
        user_id=user_id,
        user=user_id.upper(),
        current_number=current,
        recommended_number=recommended,
        action=action,
    )


def _run(
    directory: FakeDirectory,
    context: AuditContext,
    items: list[FixupItem],
    options: PatchOptions,
    sleep: SleepRecorder | None = None,
) -> PatchResult:
    return asyncio.run(
        execute_plan(directory, context, items, options, sleep=sleep or SleepRecorder())
    )


def test_plan_applies_and_bumps_versions(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    plan = build_plan(scenario_context)
    sleep = SleepRecorder()

    result = _run(
        fake_directory,
        scenario_context,
        plan.items,
        PatchOptions(simulate=False, sleep_between_seconds=0.25),
        sleep,
    )

    assert result.summary.updated == 4
    assert result.summary.failed == 0
    assert [(row.user_id, row.number, row.patched_version) for row in result.updated] == [
        ("u2", "900", 2),
        ("u6", "901", 2),
        ("u4", "300", 2),
        ("u5", "400", 2),
    ]
    assert all(row.status is PatchStatus.PATCHED for row in result.updated)
    assert fake_directory.users["u2"].addresses[0].extension == "900"
    assert fake_directory.users["u2"].version == 2
    assert sleep.calls == [0.25, 0.25, 0.25, 0.25]


def test_simulation_never_writes_or_sleeps(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    plan = build_plan(scenario_context)
    sleep = SleepRecorder()

    result = _run(fake_directory, scenario_context, plan.items, PatchOptions(), sleep)

    assert result.summary.simulate is True
    assert result.summary.updated == 4
    assert all(row.status is PatchStatus.WHAT_IF for row in result.updated)
    assert fake_directory.patches == []
    assert fake_directory.users["u2"].addresses[0].extension == "100"
    assert sleep.calls == []


def test_clear_action_reports_cleared_marker(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    items = [_item("u6", action=FixupAction.CLEAR_EXTENSION, current="500", recommended=None)]

    result = _run(fake_directory, scenario_context, items, PatchOptions(simulate=False))

    assert result.updated[0].number == CLEARED
    assert fake_directory.users["u6"].addresses[0].extension is None


def test_update_cap_skips_the_rest(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    plan = build_plan(scenario_context)

    result = _run(
        fake_directory,
        scenario_context,
        plan.items,
        PatchOptions(simulate=False, max_updates=2),
    )

    assert [row.user_id for row in result.updated] == ["u2", "u6"]
    assert [(row.user_id, row.reason) for row in result.skipped] == [
        ("u4", SkipReason.MAX_UPDATES_REACHED),
        ("u5", SkipReason.MAX_UPDATES_REACHED),
    ]
    assert len(fake_directory.patches) == 2


def test_failure_cap_skips_all_remaining_items(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    fake_directory.get_errors["u1"] = RuntimeError("boom")
    items = [_item("u1"), _item("u2", recommended="901"), _item("u3", recommended="902")]

    result = _run(
        fake_directory,
        scenario_context,
        items,
        PatchOptions(simulate=False, max_failures=1),
    )

    assert [row.user_id for row in result.failed] == ["u1"]
    assert [(row.user_id, row.reason) for row in result.skipped] == [
        ("u2", SkipReason.MAX_FAILURES_REACHED),
        ("u3", SkipReason.MAX_FAILURES_REACHED),
    ]
    assert fake_directory.get_user_calls == ["u1"]
    assert fake_directory.patches == []


def test_failures_do_not_abort_the_run(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    fake_directory.patch_errors["u1"] = ApiStatusError(
        "HTTP 500",
        method="PATCH",
        path="/api/v2/users/u1",
        status_code=500,
        retryable=True,
        attempts=3,
    )
    items = [_item("u1"), _item("unknown"), _item("u3", recommended="901")]

    result = _run(fake_directory, scenario_context, items, PatchOptions(simulate=False))

    assert [row.user_id for row in result.failed] == ["u1", "unknown"]
    assert result.failed[0].error == "HTTP 500"
    assert result.failed[1].error == "Failed to GET user unknown."
    assert [row.user_id for row in result.updated] == ["u3"]
    assert result.conflicts == 0


def test_version_conflicts_are_flagged(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    fake_directory.patch_errors["u1"] = VersionConflictError(
        "HTTP 409 Conflict",
        method="PATCH",
        path="/api/v2/users/u1",
        status_code=409,
        retryable=False,
        attempts=1,
    )

    result = _run(fake_directory, scenario_context, [_item("u1")], PatchOptions(simulate=False))

    assert result.failed[0].conflict is True
    assert result.conflicts == 1


def test_items_without_action_or_target_are_skipped(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    items = [
        _item("u1", action=FixupAction.NONE),
        _item("u2", recommended="  "),
        _item("u3", recommended=None),
    ]

    result = _run(fake_directory, scenario_context, items, PatchOptions(simulate=False))

    assert [row.reason for row in result.skipped] == [
        SkipReason.NO_ACTION,
        SkipReason.NO_TARGET_EXTENSION,
        SkipReason.NO_TARGET_EXTENSION,
    ]
    assert fake_directory.get_user_calls == []


def test_category_filters_limit_targeted_items(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    plan = build_plan(scenario_context)

    result = _run(
        fake_directory,
        scenario_context,
        plan.items,
        PatchOptions(include_discrepancy=False, include_duplicate_user=False),
    )

    assert result.summary.total_plan_items == 4
    assert result.summary.targeted == 1
    assert [row.user_id for row in result.updated] == ["u6"]


def test_did_audit_writes_address_key() -> None:
    user = make_user("u1", "Alice", "+13175550100", kind=AuditKind.DID)
    directory = FakeDirectory([user])
    context = assemble_context(kind=AuditKind.DID, users=[user], records=[])
    items = [_item("u1", current="+13175550100", recommended="+13175550199")]

    _run(directory, context, items, PatchOptions(simulate=False))

    address = directory.users["u1"].addresses[0]
    assert address.extra == {"address": "+13175550199"}
    assert address.extension is None


def test_work_phone_is_added_without_overwriting_other_phones() -> None:
    addresses = [
        Address(media_type="EMAIL", type="WORK", extra={"address": "a@example.com"}),
        Address(media_type="PHONE", type="MOBILE", extension="555", extra={"display": "m"}),
    ]

    idx = ensure_work_phone_address(addresses)

    assert idx == 2
    assert addresses[1].extension == "555"
    assert addresses[2].media_type == "PHONE"
    assert addresses[2].type == "WORK"
    assert addresses[2].extension is None
    assert addresses[2].extra == {"display": "m"}


def test_existing_work_phone_is_reused() -> None:
    addresses = [
        Address(media_type="PHONE", type="HOME", extension="1"),
        Address(media_type="PHONE", type="WORK", extension="2"),
    ]

    assert ensure_work_phone_address(addresses) == 1
    assert len(addresses) == 2


def test_cancelled_during_delay_starts_no_further_write(
    fake_directory: FakeDirectory,
    scenario_context: AuditContext,
    caplog: pytest.LogCaptureFixture,
) -> None:
    plan = build_plan(scenario_context)

    async def run() -> None:
        first_delay = asyncio.Event()

        async def blocking_sleep(_seconds: float) -> None:
            first_delay.set()
            await asyncio.Event().wait()

        task = asyncio.create_task(
            execute_plan(
                fake_directory,
                scenario_context,
                plan.items,
                PatchOptions(simulate=False),
                sleep=blocking_sleep,
            )
        )
        await first_delay.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    with caplog.at_level(logging.WARNING, logger="extaudit.domain.remediation.patch"):
        asyncio.run(run())

    assert len(fake_directory.patches) == 1
    assert fake_directory.users["u6"].version == 1
    cancelled = [r for r in caplog.records if r.getMessage().startswith("Patch run cancelled")]
    assert cancelled[0].data["updated"] == 1  # type: ignore[attr-defined]
    assert cancelled[0].data["remaining"] == 3  # type: ignore[attr-defined]


class BlockingDirectory(FakeDirectory):
    """Holds ``get_user`` for one user until the test cancels the run."""

    def __init__(self, blocked_user: str) -> None:
        super().__init__(scenario_users(), extensions=scenario_records())
        self.blocked_user = blocked_user
        self.reached = asyncio.Event()

    async def get_user(self, user_id: str) -> UserRecord | None:
        if user_id == self.blocked_user:
            self.reached.set()
            await asyncio.Event().wait()
        return await super().get_user(user_id)


def test_cancelled_during_network_call_writes_nothing_more(
    scenario_context: AuditContext,
) -> None:
    plan = build_plan(scenario_context)
    directory = BlockingDirectory("u6")

    async def run() -> None:
        task = asyncio.create_task(
            execute_plan(
                directory,
                scenario_context,
                plan.items,
                PatchOptions(simulate=False, sleep_between_seconds=0),
            )
        )
        await directory.reached.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())

    assert [user_id for user_id, *_ in directory.patches] == ["u2"]


def test_patch_missing_reasserts_own_number(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    sleep = SleepRecorder()

    result = asyncio.run(
        patch_missing(
            fake_directory,
            scenario_context,
            PatchOptions(simulate=False, sleep_between_seconds=0.5),
            sleep=sleep,
        )
    )

    assert result.summary.total_plan_items == 1
    assert [(row.user_id, row.number, row.patched_version) for row in result.updated] == [
        ("u6", "500", 2)
    ]
    assert fake_directory.users["u6"].addresses[0].extension == "500"
    assert sleep.calls == [0.5]


def test_patch_missing_simulates_by_default(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    result = asyncio.run(patch_missing(fake_directory, scenario_context, sleep=SleepRecorder()))

    assert [row.status for row in result.updated] == [PatchStatus.WHAT_IF]
    assert fake_directory.patches == []


def test_patch_missing_skips_numbers_claimed_by_several_users(
    fake_directory: FakeDirectory, scenario_context: AuditContext
) -> None:
    items = [
        *missing_items(scenario_context),
        _item("u1", action=FixupAction.REASSERT_EXISTING, current=" 100 ", recommended=None),
    ]

    result = asyncio.run(
        patch_missing(
            fake_directory,
            scenario_context,
            PatchOptions(simulate=False, sleep_between_seconds=0),
            items=items,
        )
    )

    assert [row.user_id for row in result.updated] == ["u6"]
    assert [(row.user_id, row.reason) for row in result.skipped] == [
        ("u1", SkipReason.DUPLICATE_USER_ASSIGNMENT)
    ]
    assert [user_id for user_id, *_ in fake_directory.patches] == ["u6"]


def test_patch_missing_honours_failure_cap(scenario_context: AuditContext) -> None:
    directory = FakeDirectory(scenario_users(), extensions=scenario_records())
    directory.get_errors["u6"] = LookupError("boom")
    items = [
        *missing_items(scenario_context),
        _item("u5", action=FixupAction.REASSERT_EXISTING, current="400", recommended=None),
    ]

    result = asyncio.run(
        patch_missing(
            directory,
            scenario_context,
            PatchOptions(simulate=False, max_failures=1, sleep_between_seconds=0),
            items=items,
        )
    )

    assert [row.user_id for row in result.failed] == ["u6"]
    assert [(row.user_id, row.reason) for row in result.skipped] == [
        ("u5", SkipReason.MAX_FAILURES_REACHED)
    ]
    assert directory.patches == []

"""
tests/test_import_reducer.py

Pure session transitions: initial pass, retry selection, retry folding and
the count invariants that must hold after every step.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from trip_import.classifier import Accepted, ClassifiedRow, NormalizedTrip, Pending, Rejected
from trip_import.errors import InvalidTransition, SessionClosed
from trip_import.reasons import CORRECTABLE_REASONS, CorrectionKind, ReasonCode, kinds_for
from trip_import.reducer import (
    apply_initial_pass,
    apply_retry_outcomes,
    begin_retry,
    mark_failed,
    start_session,
)
from trip_import.session import ImportSessionState, PendingRow, SessionStatus, record_failure

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
OWNER = uuid.uuid4()


def _accepted(index: int) -> ClassifiedRow:
    trip = NormalizedTrip(
        external_id=f"T{index}",
        trip_date=date(2024, 5, 1),
        origin_site_id=uuid.uuid4(),
        destination_site_id=uuid.uuid4(),
        route_id=uuid.uuid4(),
        tariff_type=None,
        personnel_id=None,
        vehicle_id=None,
        units=None,
    )
    return ClassifiedRow(index, f"T{index}", {"dt": f"T{index}"}, Accepted(trip))


def _rejected(index: int, reason: ReasonCode = ReasonCode.MALFORMED_DATA) -> ClassifiedRow:
    return ClassifiedRow(index, f"T{index}", {"dt": f"T{index}"}, Rejected(reason, "bad row", "date"))


def _pending(index: int, *reasons: ReasonCode) -> ClassifiedRow:
    return ClassifiedRow(index, f"T{index}", {"dt": f"T{index}"}, Pending(tuple(reasons), "missing"))


def _assert_totals(state: ImportSessionState) -> None:
    counted = (
        state.initial_success_count
        + state.initial_failure_count
        + state.retry_success_count
        + state.retry_failure_count
        + len(state.pending_rows)
    )
    assert counted == state.total_rows
    failed = {row.original_index for row in state.failed_rows}
    pending = {row.original_index for row in state.pending_rows}
    assert not failed & pending


def _initial(outcomes: list[ClassifiedRow]) -> ImportSessionState:
    return apply_initial_pass(start_session(OWNER, len(outcomes), NOW), outcomes)


def test_start_session_is_processing_until_expiry() -> None:
    state = start_session(OWNER, 5, NOW, timedelta(hours=2))

    assert state.status == SessionStatus.PROCESSING
    assert state.expires_at == NOW + timedelta(hours=2)
    assert not state.is_expired(NOW + timedelta(hours=1))
    assert state.is_expired(NOW + timedelta(hours=2))


def test_initial_pass_splits_rows_into_success_failed_and_pending() -> None:
    state = _initial(
        [
            _accepted(0),
            _accepted(1),
            _accepted(2),
            _pending(3, ReasonCode.MISSING_SITE),
            _rejected(4),
        ]
    )

    assert state.status == SessionStatus.PENDING_CORRECTION
    assert state.initial_success_count == 3
    assert state.initial_failure_count == 1
    assert [row.original_index for row in state.failed_rows] == [4]
    assert [row.original_index for row in state.pending_rows] == [3]
    assert state.failure_breakdown[ReasonCode.MALFORMED_DATA].count == 1
    assert state.failure_breakdown[ReasonCode.MISSING_SITE].samples == ("T3",)
    assert state.pending_kinds() == frozenset({CorrectionKind.SITE})
    _assert_totals(state)


def test_initial_pass_without_pending_rows_completes_even_if_all_fail() -> None:
    state = _initial([_rejected(0), _rejected(1, ReasonCode.DUPLICATE_EXTERNAL_ID)])

    assert state.status == SessionStatus.COMPLETED
    assert state.initial_success_count == 0
    assert state.initial_failure_count == 2
    _assert_totals(state)


def test_initial_pass_must_cover_every_row() -> None:
    with pytest.raises(ValueError):
        apply_initial_pass(start_session(OWNER, 3, NOW), [_accepted(0)])


def test_initial_pass_cannot_run_twice() -> None:
    state = _initial([_accepted(0)])

    with pytest.raises(SessionClosed):
        apply_initial_pass(state, [_accepted(0)])


def test_begin_retry_selects_rows_waiting_on_supplied_kinds() -> None:
    state = _initial(
        [
            _pending(0, ReasonCode.MISSING_SITE),
            _pending(1, ReasonCode.MISSING_VEHICLE),
            _pending(2, ReasonCode.MISSING_PERSONNEL, ReasonCode.MISSING_SITE),
        ]
    )

    retrying, selected = begin_retry(state, [CorrectionKind.SITE])

    assert retrying.status == SessionStatus.RETRYING
    assert retrying.processed_correction_kinds == frozenset({CorrectionKind.SITE})
    assert [row.original_index for row in selected] == [0, 2]
    assert state.status == SessionStatus.PENDING_CORRECTION


def test_begin_retry_with_only_processed_kinds_returns_state_unchanged() -> None:
    state = _initial([_pending(0, ReasonCode.MISSING_SITE), _pending(1, ReasonCode.MISSING_ROUTE)])
    retrying, _ = begin_retry(state, [CorrectionKind.SITE])
    state = apply_retry_outcomes(retrying, [_pending(0, ReasonCode.MISSING_ROUTE)])

    again, selected = begin_retry(state, [CorrectionKind.SITE])

    assert again is state
    assert selected == ()


def test_begin_retry_requires_pending_correction() -> None:
    with pytest.raises(InvalidTransition):
        begin_retry(start_session(OWNER, 1, NOW), [CorrectionKind.SITE])

    with pytest.raises(SessionClosed):
        begin_retry(_initial([_accepted(0)]), [CorrectionKind.SITE])


def test_retry_resolving_the_row_completes_the_session() -> None:
    state = _initial([_accepted(0), _pending(1, ReasonCode.MISSING_SITE), _rejected(2)])
    retrying, selected = begin_retry(state, [CorrectionKind.SITE])

    done = apply_retry_outcomes(retrying, [_accepted(row.original_index) for row in selected])

    assert done.status == SessionStatus.COMPLETED
    assert done.retry_success_count == 1
    assert done.pending_rows == ()
    assert done.initial_failure_count == 1
    _assert_totals(done)


def test_retry_on_unrelated_kind_leaves_row_pending() -> None:
    state = _initial([_pending(0, ReasonCode.MISSING_SITE)])
    retrying, selected = begin_retry(state, [CorrectionKind.VEHICLE])

    after = apply_retry_outcomes(retrying, [])

    assert selected == ()
    assert after.status == SessionStatus.PENDING_CORRECTION
    assert [row.original_index for row in after.pending_rows] == [0]
    assert after.processed_correction_kinds == frozenset({CorrectionKind.VEHICLE})
    _assert_totals(after)


def test_row_waiting_on_an_unprocessed_kind_stays_pending_with_new_reasons() -> None:
    state = _initial([_pending(0, ReasonCode.MISSING_SITE)])
    retrying, _ = begin_retry(state, [CorrectionKind.SITE])

    after = apply_retry_outcomes(retrying, [_pending(0, ReasonCode.MISSING_ROUTE)])

    assert after.status == SessionStatus.PENDING_CORRECTION
    assert after.pending_rows[0].missing_reasons == (ReasonCode.MISSING_ROUTE,)
    assert after.retry_failure_count == 0


def test_row_still_missing_after_its_kind_was_retried_fails() -> None:
    state = _initial([_pending(0, ReasonCode.MISSING_SITE, ReasonCode.MISSING_VEHICLE), _accepted(1)])
    retrying, _ = begin_retry(state, [CorrectionKind.SITE])
    state = apply_retry_outcomes(retrying, [_pending(0, ReasonCode.MISSING_VEHICLE)])
    retrying, selected = begin_retry(state, [CorrectionKind.VEHICLE])

    done = apply_retry_outcomes(retrying, [_pending(0, ReasonCode.MISSING_VEHICLE)])

    assert [row.original_index for row in selected] == [0]
    assert done.status == SessionStatus.COMPLETED
    assert done.retry_failure_count == 1
    assert done.failed_rows[0].reason_code == ReasonCode.STILL_MISSING
    assert done.failure_breakdown[ReasonCode.STILL_MISSING].count == 1
    _assert_totals(done)


def test_retry_rejection_keeps_failed_rows_in_original_order() -> None:
    state = _initial([_pending(0, ReasonCode.MISSING_SITE), _rejected(1), _pending(2, ReasonCode.MISSING_SITE)])
    retrying, _ = begin_retry(state, [CorrectionKind.SITE])

    done = apply_retry_outcomes(
        retrying,
        [_rejected(0, ReasonCode.DUPLICATE_EXTERNAL_ID), _accepted(2)],
    )

    assert [row.original_index for row in done.failed_rows] == [0, 1]
    assert done.retry_failure_count == 1
    assert done.retry_success_count == 1
    _assert_totals(done)


def test_retry_outcome_for_a_row_that_is_not_pending_is_rejected() -> None:
    state = _initial([_pending(0, ReasonCode.MISSING_SITE), _accepted(1)])
    retrying, _ = begin_retry(state, [CorrectionKind.SITE])

    with pytest.raises(ValueError):
        apply_retry_outcomes(retrying, [_accepted(1)])


def test_mark_failed_only_from_open_states() -> None:
    failed = mark_failed(start_session(OWNER, 1, NOW), "boom")

    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "boom"
    with pytest.raises(SessionClosed):
        mark_failed(failed, "again")


def test_record_failure_caps_samples_but_keeps_counting() -> None:
    breakdown: dict = {}
    for identifier in ("A", "B", "C", "A"):
        breakdown = record_failure(breakdown, ReasonCode.MISSING_ROUTE, identifier, sample_size=2)

    assert breakdown[ReasonCode.MISSING_ROUTE].count == 4
    assert breakdown[ReasonCode.MISSING_ROUTE].samples == ("A", "B")


def test_pending_row_survives_json_storage() -> None:
    row = PendingRow(3, "T3", (ReasonCode.MISSING_SITE, ReasonCode.MISSING_ROUTE), "missing", {"dt": "T3"})

    assert PendingRow.from_dict(row.to_dict()) == row


def test_only_missing_reference_reasons_map_to_correction_kinds() -> None:
    assert CORRECTABLE_REASONS == {
        ReasonCode.MISSING_SITE,
        ReasonCode.MISSING_PERSONNEL,
        ReasonCode.MISSING_VEHICLE,
        ReasonCode.MISSING_ROUTE,
    }
    assert kinds_for(
        [ReasonCode.MISSING_ROUTE, ReasonCode.DUPLICATE_EXTERNAL_ID, ReasonCode.STILL_MISSING]
    ) == {CorrectionKind.ROUTE}
    assert kinds_for([ReasonCode.MALFORMED_DATA]) == frozenset()

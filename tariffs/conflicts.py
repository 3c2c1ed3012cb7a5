"""
tariffs/conflicts.py

Pure overlap detection for tariff validity windows.

Used in two places:
    * the tariff form pre-check, which only wants a human-readable description;
    * the TariffWindowStore insert/update gate, which rejects the write.

Windows are inclusive on both ends; a missing end date is open-ended (+inf).
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import date, timedelta

from tariffs.base import TariffKey, TariffRecord, TariffWindow, ValidityGap
from tariffs.errors import InvalidTariffRange

_DATE_FORMAT = "%d/%m/%Y"


def validate_range(valid_from: date | None, valid_until: date | None) -> None:
    """
    Reject malformed ranges before any overlap check runs.

    Raises:
        InvalidTariffRange: missing start, or end strictly before start.
    """
    if valid_from is None:
        raise InvalidTariffRange("valid_from is required.", field="valid_from")
    if valid_until is not None and valid_until < valid_from:
        raise InvalidTariffRange(
            "valid_until must be on or after valid_from.",
            field="valid_until",
        )


def windows_overlap(
    a_from: date,
    a_until: date | None,
    b_from: date,
    b_until: date | None,
) -> bool:
    # a1 <= b2 AND b1 <= a2, with None treated as +inf
    starts_before_b_ends = b_until is None or a_from <= b_until
    b_starts_before_a_ends = a_until is None or b_from <= a_until
    return starts_before_b_ends and b_starts_before_a_ends


def find_overlap(
    candidate: TariffWindow,
    existing: Iterable[TariffRecord],
    exclude_id: uuid.UUID | None = None,
    *,
    route_id: uuid.UUID | None = None,
) -> TariffRecord | None:
    """
    Return the first record sharing the candidate's tariff key whose window
    overlaps the candidate, or None. With `route_id` the key is fully
    qualified and records of other routes never conflict; without it only
    type and method are compared.

    The caller must have validated the candidate range already; a candidate
    without a start date is a programming error here.
    """
    if candidate.valid_from is None:
        raise InvalidTariffRange("valid_from is required.", field="valid_from")

    for record in existing:
        if exclude_id is not None and record.id == exclude_id:
            continue
        if record.key != candidate.key_for(record.route_id if route_id is None else route_id):
            continue
        if windows_overlap(
            candidate.valid_from,
            candidate.valid_until,
            record.valid_from,
            record.valid_until,
        ):
            return record
    return None


def describe_conflict(candidate: TariffWindow, conflicting: TariffRecord) -> str:
    return (
        f"Tariff {candidate.tariff_type.value}/{candidate.calculation_method.value} "
        f"valid {_format_window(candidate.valid_from, candidate.valid_until)} overlaps "
        f"existing version {conflicting.id} valid "
        f"{_format_window(conflicting.valid_from, conflicting.valid_until)}."
    )


def find_gaps(records: Sequence[TariffRecord]) -> list[ValidityGap]:
    """
    List uncovered spans between consecutive windows of each tariff key.
    Assumes the records already satisfy the no-overlap invariant.
    Spans before the first window and after an open-ended one are not gaps.
    """
    grouped: dict[TariffKey, list[TariffRecord]] = {}
    for record in records:
        grouped.setdefault(record.key, []).append(record)

    gaps: list[ValidityGap] = []
    for key, versions in grouped.items():
        ordered = sorted(versions, key=lambda item: item.valid_from)
        for previous, following in zip(ordered, ordered[1:]):
            if previous.valid_until is None:
                break
            next_day = previous.valid_until + timedelta(days=1)
            if following.valid_from > next_day:
                gaps.append(
                    ValidityGap(
                        tariff_type=key.tariff_type,
                        calculation_method=key.calculation_method,
                        gap_from=next_day,
                        gap_until=following.valid_from - timedelta(days=1),
                    )
                )

    gaps.sort(key=lambda gap: (gap.tariff_type.value, gap.calculation_method.value, gap.gap_from))
    return gaps


def _format_window(valid_from: date | None, valid_until: date | None) -> str:
    start = valid_from.strftime(_DATE_FORMAT) if valid_from else "?"
    end = valid_until.strftime(_DATE_FORMAT) if valid_until else "open-ended"
    return f"{start} - {end}"

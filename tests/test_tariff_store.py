"""
tests/test_tariff_store.py

TariffWindowStore behaviour over an in-memory repository: the overlap gate on
insert and update, applicable/current resolution, bulk validity moves and
tariff type selection for trips that do not state one.
"""

from __future__ import annotations

import unittest
import uuid
from datetime import date
from decimal import Decimal

from tariffs.base import CalculationMethod, TariffPatch, TariffRecord, TariffType, TariffWindow
from tariffs.errors import (
    InvalidTariffRange,
    InvariantViolation,
    TariffConflict,
    TariffNotFound,
)
from tariffs.store import TariffWindowStore
from tests.fakes import InMemoryTariffRepository

PER_DISTANCE = CalculationMethod.PER_DISTANCE


def _record(
    route_id: uuid.UUID,
    valid_from: date | None,
    valid_until: date | None = None,
    *,
    tariff_type: TariffType = TariffType.TRMC,
    method: CalculationMethod = PER_DISTANCE,
    base_value: str = "10",
) -> TariffRecord:
    return TariffRecord(
        route_id=route_id,
        tariff_type=tariff_type,
        calculation_method=method,
        base_value=Decimal(base_value),
        surcharge_value=Decimal("0"),
        valid_from=valid_from,  # type: ignore[arg-type]
        valid_until=valid_until,
    )


class TestTariffWindowStoreWrites(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryTariffRepository()
        self.route_id = self.repository.add_route(distance_km=12.5)
        self.store = TariffWindowStore(self.repository)

    def test_overlapping_version_of_same_key_is_rejected(self) -> None:
        first_id = self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))

        with self.assertRaises(TariffConflict) as ctx:
            self.store.insert(_record(self.route_id, date(2024, 6, 15), date(2024, 12, 31)))

        self.assertEqual(ctx.exception.conflicting_id, first_id)
        self.assertEqual(len(self.repository.records), 1)

    def test_same_window_with_other_tariff_type_is_accepted(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))
        self.store.insert(
            _record(self.route_id, date(2024, 6, 15), date(2024, 12, 31), tariff_type=TariffType.TRMI)
        )

        self.assertEqual(len(self.repository.records), 2)

    def test_adjacent_windows_do_not_conflict(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))
        self.store.insert(_record(self.route_id, date(2024, 7, 1), None))

        self.assertEqual(len(self.repository.records), 2)

    def test_insert_without_start_date_names_the_field(self) -> None:
        with self.assertRaises(InvalidTariffRange) as ctx:
            self.store.insert(_record(self.route_id, None))

        self.assertEqual(ctx.exception.field, "valid_from")

    def test_negative_base_value_is_rejected(self) -> None:
        with self.assertRaises(InvalidTariffRange) as ctx:
            self.store.insert(_record(self.route_id, date(2024, 1, 1), base_value="-1"))

        self.assertEqual(ctx.exception.field, "base_value")

    def test_amounts_are_rounded_to_cents(self) -> None:
        record_id = self.store.insert(_record(self.route_id, date(2024, 1, 1), base_value="10.555"))

        self.assertEqual(self.repository.records[record_id].base_value, Decimal("10.56"))

    def test_update_excludes_the_record_itself_from_the_gate(self) -> None:
        record_id = self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))

        self.store.update(record_id, TariffPatch(valid_until=date(2024, 9, 30)))

        self.assertEqual(self.repository.records[record_id].valid_until, date(2024, 9, 30))

    def test_update_into_another_window_is_rejected_and_leaves_record_unchanged(self) -> None:
        first_id = self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))
        second_id = self.store.insert(_record(self.route_id, date(2024, 7, 1), date(2024, 12, 31)))

        with self.assertRaises(TariffConflict) as ctx:
            self.store.update(second_id, TariffPatch(valid_from=date(2024, 6, 1)))

        self.assertEqual(ctx.exception.conflicting_id, first_id)
        self.assertEqual(self.repository.records[second_id].valid_from, date(2024, 7, 1))

    def test_update_can_reopen_a_closed_window(self) -> None:
        record_id = self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))

        self.store.update(record_id, TariffPatch(clear_valid_until=True))

        self.assertIsNone(self.repository.records[record_id].valid_until)

    def test_update_of_unknown_record_raises_not_found(self) -> None:
        with self.assertRaises(TariffNotFound):
            self.store.update(uuid.uuid4(), TariffPatch(valid_until=date(2024, 1, 1)))

    def test_check_reports_conflict_without_writing(self) -> None:
        existing_id = self.store.insert(_record(self.route_id, date(2024, 1, 1), None))
        candidate = TariffWindow(TariffType.TRMC, PER_DISTANCE, date(2025, 1, 1), None)

        conflicting = self.store.check(self.route_id, candidate)

        self.assertIsNotNone(conflicting)
        self.assertEqual(conflicting.id, existing_id)
        self.assertIsNone(self.store.check(self.route_id, candidate, exclude_id=existing_id))
        self.assertEqual(len(self.repository.records), 1)


class TestTariffWindowStoreReads(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryTariffRepository()
        self.route_id = self.repository.add_route()
        self.store = TariffWindowStore(self.repository)

    def test_resolve_applicable_returns_the_covering_version(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30), base_value="10"))
        second_id = self.store.insert(_record(self.route_id, date(2024, 7, 1), None, base_value="12"))

        resolved = self.store.resolve_applicable(self.route_id, TariffType.TRMC, PER_DISTANCE, date(2024, 7, 1))

        self.assertEqual(resolved.id, second_id)

    def test_resolve_applicable_raises_when_date_is_uncovered(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))

        with self.assertRaises(TariffNotFound):
            self.store.resolve_applicable(self.route_id, TariffType.TRMC, PER_DISTANCE, date(2024, 7, 1))

    def test_resolve_applicable_refuses_to_pick_between_overlapping_rows(self) -> None:
        # Written behind the store's back, e.g. by a manual data fix.
        self.repository.add(_record(self.route_id, date(2024, 1, 1), None))
        self.repository.add(_record(self.route_id, date(2024, 3, 1), None))

        with self.assertRaises(InvariantViolation):
            self.store.resolve_applicable(self.route_id, TariffType.TRMC, PER_DISTANCE, date(2024, 4, 1))

    def test_resolution_is_deterministic_across_store_instances(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))
        self.store.insert(_record(self.route_id, date(2024, 7, 1), None))
        other = TariffWindowStore(self.repository)

        for day in (date(2024, 1, 1), date(2024, 6, 30), date(2024, 7, 1), date(2030, 1, 1)):
            self.assertEqual(
                self.store.resolve_applicable(self.route_id, TariffType.TRMC, PER_DISTANCE, day).id,
                other.resolve_applicable(self.route_id, TariffType.TRMC, PER_DISTANCE, day).id,
            )

    def test_resolve_current_prefers_live_versions(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))
        live_id = self.store.insert(_record(self.route_id, date(2024, 7, 1), None))

        current = self.store.resolve_current(self.route_id, TariffType.TRMC, PER_DISTANCE, date(2024, 8, 1))

        self.assertEqual(current.record.id, live_id)
        self.assertFalse(current.stale)

    def test_resolve_current_falls_back_to_latest_expired_version(self) -> None:
        self.store.insert(_record(self.route_id, date(2023, 1, 1), date(2023, 6, 30)))
        latest_id = self.store.insert(_record(self.route_id, date(2023, 7, 1), date(2023, 12, 31)))

        current = self.store.resolve_current(self.route_id, TariffType.TRMC, PER_DISTANCE, date(2024, 8, 1))

        self.assertEqual(current.record.id, latest_id)
        self.assertTrue(current.stale)

    def test_resolve_current_without_versions_raises(self) -> None:
        with self.assertRaises(TariffNotFound):
            self.store.resolve_current(self.route_id, TariffType.TRMC, PER_DISTANCE, date(2024, 8, 1))

    def test_list_versions_is_ordered_by_key_then_start(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 7, 1), None, tariff_type=TariffType.TRMI))
        self.store.insert(_record(self.route_id, date(2024, 7, 1), None))
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 6, 30)))

        versions = self.store.list_versions(self.route_id)

        self.assertEqual(
            [(record.tariff_type, record.valid_from) for record in versions],
            [
                (TariffType.TRMC, date(2024, 1, 1)),
                (TariffType.TRMC, date(2024, 7, 1)),
                (TariffType.TRMI, date(2024, 7, 1)),
            ],
        )

    def test_highest_applicable_type_picks_largest_base_value_in_force(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), None, base_value="100"))
        self.store.insert(
            _record(self.route_id, date(2024, 1, 1), None, tariff_type=TariffType.TRMI, base_value="150")
        )

        self.assertEqual(
            self.store.highest_applicable_type(self.route_id, date(2024, 5, 1)), TariffType.TRMI
        )

    def test_highest_applicable_type_without_tariff_in_force_uses_latest_version(self) -> None:
        self.store.insert(_record(self.route_id, date(2024, 1, 1), date(2024, 1, 31)))
        self.store.insert(
            _record(self.route_id, date(2024, 2, 1), date(2024, 2, 28), tariff_type=TariffType.TRMI)
        )

        self.assertEqual(
            self.store.highest_applicable_type(self.route_id, date(2024, 5, 1)), TariffType.TRMI
        )
        self.assertIsNone(self.store.highest_applicable_type(uuid.uuid4(), date(2024, 5, 1)))


class TestBulkValidityUpdate(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryTariffRepository()
        self.store = TariffWindowStore(self.repository)

    def test_moves_every_version_of_each_route(self) -> None:
        route_a = self.repository.add_route()
        route_b = self.repository.add_route()
        a_id = self.store.insert(_record(route_a, date(2024, 1, 1), date(2024, 12, 31)))
        b_id = self.store.insert(_record(route_b, date(2024, 1, 1), None, method=CalculationMethod.FIXED))

        result = self.store.bulk_update_validity([route_a, route_b], date(2025, 1, 1), None)

        self.assertEqual(result.updated, [route_a, route_b])
        self.assertEqual(result.conflicts, [])
        self.assertEqual(self.repository.records[a_id].valid_from, date(2025, 1, 1))
        self.assertIsNone(self.repository.records[a_id].valid_until)
        self.assertEqual(self.repository.records[b_id].valid_from, date(2025, 1, 1))

    def test_conflicting_record_is_reported_and_left_untouched(self) -> None:
        route_id = self.repository.add_route()
        first_id = self.store.insert(_record(route_id, date(2024, 1, 1), date(2024, 6, 30)))
        second_id = self.store.insert(_record(route_id, date(2024, 7, 1), date(2024, 12, 31)))

        result = self.store.bulk_update_validity([route_id], date(2025, 1, 1), None)

        self.assertEqual(result.updated, [route_id])
        self.assertEqual(len(result.conflicts), 1)
        self.assertEqual(result.conflicts[0].record_id, second_id)
        self.assertEqual(result.conflicts[0].conflicting_id, first_id)
        self.assertEqual(self.repository.records[second_id].valid_from, date(2024, 7, 1))

    def test_type_filter_and_routes_without_tariffs(self) -> None:
        route_id = self.repository.add_route()
        empty_route = self.repository.add_route()
        trmc_id = self.store.insert(_record(route_id, date(2024, 1, 1), None))
        trmi_id = self.store.insert(_record(route_id, date(2024, 1, 1), None, tariff_type=TariffType.TRMI))

        result = self.store.bulk_update_validity(
            [route_id, empty_route], date(2025, 1, 1), date(2025, 12, 31), TariffType.TRMI
        )

        self.assertEqual(result.updated, [route_id])
        self.assertEqual(result.not_found, [empty_route])
        self.assertEqual(self.repository.records[trmc_id].valid_from, date(2024, 1, 1))
        self.assertEqual(self.repository.records[trmi_id].valid_until, date(2025, 12, 31))

    def test_invalid_range_is_rejected_before_any_write(self) -> None:
        route_id = self.repository.add_route()
        record_id = self.store.insert(_record(route_id, date(2024, 1, 1), None))

        with self.assertRaises(InvalidTariffRange):
            self.store.bulk_update_validity([route_id], date(2025, 1, 1), date(2024, 1, 1))

        self.assertEqual(self.repository.records[record_id].valid_from, date(2024, 1, 1))


if __name__ == "__main__":
    unittest.main()

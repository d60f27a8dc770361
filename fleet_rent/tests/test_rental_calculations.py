import sys
import unittest
from datetime import date
from pathlib import Path

from pydantic import ValidationError

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from schemas.rentals import RentalDraft, RentalItemDraft, RentalUpdate, normalize_phone_number
from services.errors import DuplicateEquipment, EmptySelection, InvalidPeriod, Unavailable
from services.rental_service import (
    apply_rental_changes,
    compute_totals,
    duration_days,
    validate_submission,
)


def _item(excavator_id=1, name="Komatsu PC200", regular_rate=100_000, overtime_rate=150_000, regular=8, overtime=2):
    return RentalItemDraft(
        excavatorID=excavator_id,
        excavatorName=name,
        regularRatePerHour=regular_rate,
        overtimeRatePerHour=overtime_rate,
        regularHours=regular,
        overtimeHours=overtime,
    )


def _draft(items=None, start=date(2025, 1, 1), end=date(2025, 1, 2)):
    return RentalDraft(
        renterName="  Budi Santoso ",
        renterPhone="+62 812-3456-789",
        renterEmail="",
        startDate=start,
        endDate=end,
        excavators=items if items is not None else [_item()],
    )


class DurationTests(unittest.TestCase):
    def test_same_day_is_one_day(self):
        self.assertEqual(duration_days(date(2025, 1, 1), date(2025, 1, 1)), 1)

    def test_inclusive_range(self):
        self.assertEqual(duration_days(date(2025, 1, 1), date(2025, 1, 2)), 2)
        self.assertEqual(duration_days(date(2025, 1, 30), date(2025, 2, 2)), 4)

    def test_reversed_range_is_zero(self):
        self.assertEqual(duration_days(date(2025, 1, 2), date(2025, 1, 1)), 0)


class ComputeTotalsTests(unittest.TestCase):
    def test_two_day_rental_with_overtime(self):
        totals = compute_totals([_item()], duration_days(date(2025, 1, 1), date(2025, 1, 2)))

        line = totals["items"][0]
        self.assertEqual(line["totalRegularPay"], 1_600_000)
        self.assertEqual(line["totalOvertimePay"], 600_000)
        self.assertEqual(line["totalPay"], 2_200_000)
        self.assertEqual(totals["totalAmount"], 2_200_000)

    def test_pure_and_consistent(self):
        items = [_item(1), _item(2, regular_rate=90_000, overtime_rate=0, regular=7.5, overtime=0)]
        first = compute_totals(items, 3)
        second = compute_totals(items, 3)

        self.assertEqual(first, second)
        for line in first["items"]:
            self.assertEqual(line["totalPay"], line["totalRegularPay"] + line["totalOvertimePay"])
        self.assertEqual(first["totalAmount"], sum(line["totalPay"] for line in first["items"]))
        self.assertEqual(first["items"][1]["totalRegularPay"], 2_025_000)

    def test_fractional_amounts_round_half_up(self):
        totals = compute_totals([_item(regular_rate=5, overtime_rate=0, regular=0.5, overtime=0)], 1)
        self.assertEqual(totals["items"][0]["totalRegularPay"], 3)

    def test_uses_rate_snapshot(self):
        totals = compute_totals([_item(regular_rate=1, overtime_rate=1, regular=1, overtime=1)], 1)
        self.assertEqual(totals["totalAmount"], 2)


class ValidateSubmissionTests(unittest.TestCase):
    def test_duplicate_excavators_rejected_even_with_bad_period(self):
        draft = _draft([_item(1), _item(1)], start=date(2025, 1, 5), end=date(2025, 1, 1))
        with self.assertRaises(DuplicateEquipment):
            validate_submission(draft, {1: False})

    def test_empty_selection_rejected(self):
        draft = _draft([_item(1), RentalItemDraft()])
        with self.assertRaises(EmptySelection):
            validate_submission(draft, {1: True})

    def test_unavailable_lists_names(self):
        draft = _draft([_item(1, name="Komatsu PC200"), _item(2, name="CAT 320")])
        with self.assertRaises(Unavailable) as ctx:
            validate_submission(draft, {1: False, 2: True})
        self.assertEqual(ctx.exception.names, ["Komatsu PC200"])

    def test_invalid_period_rejected(self):
        draft = _draft(start=date(2025, 1, 3), end=date(2025, 1, 1))
        with self.assertRaises(InvalidPeriod):
            validate_submission(draft, {1: True})

    def test_valid_draft_passes(self):
        self.assertIsNone(validate_submission(_draft(), {1: True}))


class DraftTests(unittest.TestCase):
    def test_phone_and_name_are_normalized(self):
        draft = _draft()
        self.assertEqual(draft.renterPhone, "08123456789")
        self.assertEqual(draft.renterName, "Budi Santoso")
        self.assertIsNone(draft.renterEmail)

    def test_phone_normalization_keeps_local_numbers(self):
        self.assertEqual(normalize_phone_number("0812 3456 7890"), "081234567890")

    def test_invalid_phone_rejected(self):
        with self.assertRaises(ValidationError):
            RentalDraft(
                renterName="Budi",
                renterPhone="12345",
                startDate=date(2025, 1, 1),
                endDate=date(2025, 1, 1),
                excavators=[_item()],
            )

    def test_hours_and_rates_are_bounded(self):
        with self.assertRaises(ValidationError):
            RentalItemDraft(excavatorID=1, regularHours=25)
        with self.assertRaises(ValidationError):
            RentalItemDraft(excavatorID=1, overtimeHours=17)
        with self.assertRaises(ValidationError):
            RentalItemDraft(excavatorID=1, regularRatePerHour=-1)

    def test_drafts_are_immutable(self):
        draft = _draft()
        with self.assertRaises(ValidationError):
            draft.renterName = "Someone Else"

    def test_apply_changes_returns_new_draft(self):
        draft = _draft()
        changed = apply_rental_changes(draft, RentalUpdate(endDate=date(2025, 1, 4), renterEmail="budi@example.com"))

        self.assertEqual(draft.endDate, date(2025, 1, 2))
        self.assertEqual(changed.endDate, date(2025, 1, 4))
        self.assertEqual(changed.startDate, draft.startDate)
        self.assertEqual(str(changed.renterEmail), "budi@example.com")
        self.assertEqual(changed.excavators, draft.excavators)


if __name__ == "__main__":
    unittest.main()

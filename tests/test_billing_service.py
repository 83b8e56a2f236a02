import json
import unittest
from datetime import datetime, timezone

from core.billing_service import (
    MAX_RESERVATION_MONTHS,
    RENEWAL_POLICY_EXTEND,
    RENEWAL_POLICY_OVERWRITE,
    add_months,
    compute_period,
    decode_reservation,
    encode_reservation,
    new_order_id,
    normalize_renewal_policy,
)
from core.errors import DataIntegrityError


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class AddMonthsTestCase(unittest.TestCase):
    def test_plain_month(self):
        self.assertEqual(add_months(_utc(2025, 3, 15, 8, 30), 1), _utc(2025, 4, 15, 8, 30))

    def test_end_of_month_clamps(self):
        self.assertEqual(add_months(_utc(2025, 1, 31), 1), _utc(2025, 2, 28))
        self.assertEqual(add_months(_utc(2024, 1, 31), 1), _utc(2024, 2, 29))
        self.assertEqual(add_months(_utc(2025, 3, 31), 6), _utc(2025, 9, 30))

    def test_year_rollover(self):
        self.assertEqual(add_months(_utc(2025, 11, 30), 12), _utc(2026, 11, 30))
        self.assertEqual(add_months(_utc(2025, 12, 31), 1), _utc(2026, 1, 31))
        self.assertEqual(add_months(_utc(2025, 8, 31), 6), _utc(2026, 2, 28))

    def test_keeps_timezone(self):
        self.assertIs(add_months(_utc(2025, 1, 1), 1).tzinfo, timezone.utc)


class ComputePeriodTestCase(unittest.TestCase):
    def test_overwrite_starts_now(self):
        now = _utc(2025, 5, 1)
        start, end = compute_period(now, 1, current_expires_at=_utc(2026, 1, 1), policy=RENEWAL_POLICY_OVERWRITE)
        self.assertEqual(start, now)
        self.assertEqual(end, _utc(2025, 6, 1))

    def test_extend_continues_from_unexpired_period(self):
        now = _utc(2025, 5, 1)
        start, end = compute_period(now, 1, current_expires_at=_utc(2026, 1, 1), policy=RENEWAL_POLICY_EXTEND)
        self.assertEqual(start, _utc(2026, 1, 1))
        self.assertEqual(end, _utc(2026, 2, 1))

    def test_extend_ignores_expired_period(self):
        now = _utc(2025, 5, 1)
        start, _ = compute_period(now, 1, current_expires_at=_utc(2025, 1, 1), policy=RENEWAL_POLICY_EXTEND)
        self.assertEqual(start, now)

    def test_extend_accepts_naive_expiry_as_utc(self):
        now = _utc(2025, 5, 1)
        start, _ = compute_period(now, 1, current_expires_at=datetime(2025, 7, 1), policy=RENEWAL_POLICY_EXTEND)
        self.assertEqual(start, _utc(2025, 7, 1))

    def test_unknown_policy_falls_back_to_overwrite(self):
        self.assertEqual(normalize_renewal_policy("stack"), RENEWAL_POLICY_OVERWRITE)
        self.assertEqual(normalize_renewal_policy(" Extend "), RENEWAL_POLICY_EXTEND)


class ReservationTestCase(unittest.TestCase):
    def test_encode_uses_camel_case_user_id(self):
        raw = encode_reservation("premium", 6, "u-1")
        self.assertEqual(json.loads(raw), {"tier": "premium", "months": 6, "userId": "u-1"})

    def test_decode(self):
        reservation = decode_reservation('{"tier":"premium","months":12,"userId":"u-1"}')
        self.assertEqual(reservation.tier, "premium")
        self.assertEqual(reservation.months, 12)
        self.assertEqual(reservation.user_id, "u-1")

    def test_decode_accepts_numeric_month_string(self):
        self.assertEqual(decode_reservation('{"tier":"premium","months":"6","userId":"u"}').months, 6)

    def test_decode_months_upper_bound(self):
        raw = encode_reservation("premium", MAX_RESERVATION_MONTHS, "u")
        self.assertEqual(decode_reservation(raw).months, MAX_RESERVATION_MONTHS)
        with self.assertRaises(DataIntegrityError):
            decode_reservation(encode_reservation("premium", MAX_RESERVATION_MONTHS + 1, "u"))

    def test_decode_rejects_bad_input(self):
        bad_inputs = [
            None,
            "",
            "{not json",
            "[1, 2]",
            '{"tier":"premium","months":1}',
            '{"tier":"premium","userId":"u"}',
            '{"months":1,"userId":"u"}',
            '{"tier":"premium","months":0,"userId":"u"}',
            '{"tier":"premium","months":-1,"userId":"u"}',
            '{"tier":"premium","months":1.5,"userId":"u"}',
            '{"tier":"premium","months":true,"userId":"u"}',
            '{"tier":"premium","months":"six","userId":"u"}',
            '{"tier":"premium","months":100000,"userId":"u"}',
            "[" * 200000 + "]" * 200000,
        ]
        for raw in bad_inputs:
            with self.subTest(raw=raw):
                with self.assertRaises(DataIntegrityError):
                    decode_reservation(raw)


class OrderIdTestCase(unittest.TestCase):
    def test_format(self):
        now = _utc(2025, 1, 1)
        order_id = new_order_id("abcd1234-ffff-0000", now)
        self.assertEqual(order_id, f"ORDER_{int(now.timestamp() * 1000)}_abcd1234")


if __name__ == "__main__":
    unittest.main()

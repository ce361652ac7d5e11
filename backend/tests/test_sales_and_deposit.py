# Overview: Pytest coverage for sales aggregation, the transactions store and deposit arithmetic.

from datetime import timedelta

import pytest

from riderops.models import SalesTransaction
from riderops.services import deposit_service, sales_service
from riderops.services.sales_service import SalesBuckets
from riderops.time_utils import local_day_bounds, local_today, utcnow
from riderops.validation import NotFoundError, PreconditionFailed, ValidationError

RIDER = 21


# =============================================================================
# DEPOSIT CALCULATOR
# =============================================================================


class TestComputeDeposit:

    def test_floor_at_zero(self):
        assert deposit_service.compute_deposit(0, [{"amount": 50000}]) == 0

    def test_cash_minus_expenses(self):
        assert deposit_service.compute_deposit(200000, [{"amount": 30000}, {"amount": 20000}]) == 150000

    def test_no_expenses(self):
        assert deposit_service.compute_deposit(120000, []) == 120000

    def test_accepts_objects_and_numbers(self):
        class Expense:
            amount = 5000

        assert deposit_service.compute_deposit(20000, [Expense(), 3000, {"amount": None}]) == 12000

    def test_closing_totals(self):
        sales = SalesBuckets(cash=100000, qris=20000, transfer=5000, total=125000, count=7)

        totals = deposit_service.compute_closing_totals(sales, [{"amount": 40000}])

        assert totals.to_dict() == {
            "total_sales": 125000,
            "cash_sales": 100000,
            "qris_sales": 20000,
            "transfer_sales": 5000,
            "total_expenses": 40000,
            "deposit": 60000,
            "total_transactions": 7,
        }


# =============================================================================
# AGGREGATOR
# =============================================================================


class TestAggregate:

    @pytest.mark.parametrize("method,bucket", [
        ("cash", "cash"),
        ("Cash", "cash"),
        ("QRIS", "qris"),
        ("bank_transfer", "transfer"),
        ("Transfer", "transfer"),
        ("BANK", "transfer"),
    ])
    def test_payment_method_buckets(self, db_session, sale, method, bucket):
        sale(RIDER, 10000, method)

        buckets = sales_service.aggregate_day(RIDER, local_today())

        assert getattr(buckets, bucket) == 10000
        assert buckets.total == 10000
        assert buckets.count == 1

    def test_voided_and_incomplete_excluded(self, db_session, sale):
        sale(RIDER, 10000, "cash")
        sale(RIDER, 70000, "cash", is_voided=True)
        sale(RIDER, 30000, "qris", status="pending")
        sale(RIDER, 20000, "qris", status="cancelled")

        buckets = sales_service.aggregate_day(RIDER, local_today())

        assert buckets == SalesBuckets(cash=10000, qris=0, transfer=0, total=10000, count=1)

    def test_unknown_method_counts_in_total_only(self, db_session, sale):
        sale(RIDER, 10000, "voucher")

        buckets = sales_service.aggregate_day(RIDER, local_today())

        assert buckets.cash == buckets.qris == buckets.transfer == 0
        assert buckets.total == 10000
        assert buckets.count == 1

    def test_window_is_half_open(self, db_session, sale):
        start, end = local_day_bounds(local_today())
        sale(RIDER, 1000, "cash", transaction_date=start)
        sale(RIDER, 2000, "cash", transaction_date=end - timedelta(seconds=1))
        sale(RIDER, 4000, "cash", transaction_date=end)
        sale(RIDER, 8000, "cash", transaction_date=start - timedelta(seconds=1))

        assert sales_service.aggregate(RIDER, start, end).cash == 3000

    def test_other_riders_excluded(self, db_session, sale):
        sale(RIDER, 1000, "cash")
        sale(RIDER + 1, 5000, "cash")

        assert sales_service.aggregate_day(RIDER, local_today()).total == 1000

    def test_repeated_reads_are_stable(self, db_session, sale):
        sale(RIDER, 1000, "qris")

        first = sales_service.aggregate_day(RIDER, local_today())
        second = sales_service.aggregate_day(RIDER, local_today())

        assert first == second


# =============================================================================
# TRANSACTIONS STORE
# =============================================================================


class TestTransactions:

    def test_record_and_void(self, db_session):
        tx = sales_service.record_transaction(rider_id=RIDER, final_amount=25000, payment_method="cash")
        assert tx.transaction_number.startswith("TRX-")
        assert sales_service.aggregate_day(RIDER, local_today()).cash == 25000

        voided = sales_service.void_transaction(tx.id, reason="Customer cancelled", user_id=900)

        assert voided.is_voided is True
        assert voided.voided_by_user_id == 900
        assert voided.void_reason == "Customer cancelled"
        assert sales_service.aggregate_day(RIDER, local_today()).total == 0

    def test_void_twice(self, db_session):
        tx = sales_service.record_transaction(rider_id=RIDER, final_amount=1000, payment_method="qris")
        sales_service.void_transaction(tx.id, reason="Mistake", user_id=900)

        with pytest.raises(PreconditionFailed):
            sales_service.void_transaction(tx.id, reason="Mistake", user_id=900)

    def test_void_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.void_transaction(404, reason="x", user_id=900)

    def test_void_needs_reason(self, db_session):
        tx = sales_service.record_transaction(rider_id=RIDER, final_amount=1000, payment_method="cash")
        with pytest.raises(ValidationError):
            sales_service.void_transaction(tx.id, reason="", user_id=900)

    def test_invalid_transactions(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.record_transaction(rider_id=RIDER, final_amount=-1, payment_method="cash")
        with pytest.raises(ValidationError):
            sales_service.record_transaction(rider_id=RIDER, final_amount=1, payment_method="cash", status="done")
        assert db_session.query(SalesTransaction).count() == 0

    def test_transaction_date_defaults_to_now(self, db_session):
        before = utcnow()
        tx = sales_service.record_transaction(rider_id=RIDER, final_amount=1, payment_method="cash")
        assert tx.transaction_date >= before.replace(microsecond=0)

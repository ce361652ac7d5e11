# Overview: Pytest coverage for end-of-shift report submission and branch approval.

"""
Shift Report Submission Tests

Verifies:
1. Outstanding stock blocks closing and writes nothing
2. Closing totals use full-day sales and the floored deposit
3. Repeat and concurrent submissions never duplicate the report
4. Photo store outages degrade to "no photo" for expenses and deposit proof
5. Branch approval is recorded exactly once
"""

from datetime import timedelta

import pytest

from riderops.extensions import db
from riderops.models import DailyReport, OperationalExpense, ReportSubmissionClaim, Shift
from riderops.models.shifts import SHIFT_ACTIVE, SHIFT_COMPLETED
from riderops.services import report_service, stock_service
from riderops.services.photo_storage import PhotoStorage
from riderops.time_utils import local_today, utcnow
from riderops.validation import (
    AlreadySubmitted,
    AlreadySubmitting,
    DependencyError,
    NotFoundError,
    PreconditionFailed,
    StockNotReturned,
    ValidationError,
)

RIDER = 11


class _FailingStorage(PhotoStorage):
    def save(self, data, *, prefix):
        raise DependencyError("Photo storage unavailable", reason="down")


def _sell_out(stocked, product_id=1, quantity=5):
    stocked(RIDER, product_id, quantity)
    stock_service.record_sale(RIDER, product_id, quantity)


class TestSubmitPreconditions:

    def test_outstanding_stock_blocks_submission(self, db_session, stocked):
        stocked(RIDER, 1, 5)
        stocked(RIDER, 2, 3)

        with pytest.raises(StockNotReturned) as exc:
            report_service.submit_shift_report(RIDER, expenses=[{"expense_type": "fuel", "amount": 10000}])

        assert exc.value.details["outstanding_lines"] == 2
        assert db_session.query(DailyReport).count() == 0
        assert db_session.query(OperationalExpense).count() == 0
        assert db_session.query(Shift).filter_by(status=SHIFT_ACTIVE).count() == 1
        # Claim released
        assert db_session.query(ReportSubmissionClaim).count() == 0

    def test_submission_in_flight_is_rejected(self, db_session):
        db_session.add(ReportSubmissionClaim(rider_id=RIDER, claimed_at=utcnow()))
        db_session.commit()

        with pytest.raises(AlreadySubmitting):
            report_service.submit_shift_report(RIDER)

        assert db_session.query(DailyReport).count() == 0
        # The other request's claim is left alone
        assert db_session.query(ReportSubmissionClaim).count() == 1

    def test_stale_claim_is_taken_over(self, db_session):
        db_session.add(ReportSubmissionClaim(rider_id=RIDER, claimed_at=utcnow() - timedelta(hours=1)))
        db_session.commit()

        result = report_service.submit_shift_report(RIDER)

        assert result.shift.status == SHIFT_COMPLETED
        assert db_session.query(ReportSubmissionClaim).count() == 0

    def test_negative_expense_rejected(self, db_session):
        with pytest.raises(ValidationError):
            report_service.submit_shift_report(RIDER, expenses=[{"expense_type": "fuel", "amount": -5}])
        assert db_session.query(Shift).count() == 0

    @pytest.mark.parametrize("field", ["description", "client_ref", "receipt_photo_ref"])
    def test_non_string_expense_text_rejected(self, db_session, field):
        with pytest.raises(ValidationError) as exc:
            report_service.submit_shift_report(RIDER, expenses=[{"amount": 5000, field: 5}])
        assert exc.value.details == {"field": field}
        assert db_session.query(ReportSubmissionClaim).count() == 0

    def test_receipt_during_uploads_blocks_closing(self, db_session, stocked, send, monkeypatch):
        _sell_out(stocked)
        pending = send(RIDER, 2, 4)
        upload = report_service._upload_best_effort

        def receive_then_upload(*args, **kwargs):
            if pending.status == "sent":
                stock_service.confirm_receive(pending.id)
            return upload(*args, **kwargs)

        monkeypatch.setattr(report_service, "_upload_best_effort", receive_then_upload)

        with pytest.raises(StockNotReturned) as exc:
            report_service.submit_shift_report(RIDER, deposit_proof_ref="blob://deposit")

        assert exc.value.details["product_ids"] == [2]
        assert stock_service.remaining_stock_count(RIDER) == 1
        assert db_session.query(DailyReport).count() == 0
        assert db_session.query(Shift).filter_by(rider_id=RIDER, status=SHIFT_ACTIVE).count() == 1
        assert db_session.query(ReportSubmissionClaim).count() == 0

    def test_foreign_shift_id(self, db_session, stocked):
        other = stock_service.confirm_receive(
            stock_service.send_stock(branch_id=1, rider_id=99, items=[{"product_id": 1, "quantity": 1}])[0].id
        ).shift

        with pytest.raises(NotFoundError):
            report_service.submit_shift_report(RIDER, shift_id=other.id)


class TestSubmitTotals:

    def test_closing_totals_written_to_shift_and_report(self, db_session, stocked, sale):
        _sell_out(stocked)
        sale(RIDER, 150000, "cash")
        sale(RIDER, 50000, "CASH")
        sale(RIDER, 40000, "qris")
        sale(RIDER, 30000, "bank_transfer")
        sale(RIDER, 99999, "cash", is_voided=True)
        sale(RIDER, 77777, "cash", status="pending")

        result = report_service.submit_shift_report(
            RIDER,
            expenses=[
                {"expense_type": "fuel", "amount": 30000, "description": "Bensin"},
                {"expense_type": "ice", "amount": "20000"},
                {"expense_type": "parking", "amount": ""},
            ],
            deposit_proof_ref="blob://deposit",
            notes="All good",
        )

        totals = result.totals
        assert totals.cash_sales == 200000
        assert totals.qris_sales == 40000
        assert totals.transfer_sales == 30000
        assert totals.total_sales == 270000
        assert totals.total_transactions == 4
        assert totals.total_expenses == 50000
        assert totals.deposit == 150000

        report = result.report
        assert report.cash_collected == 150000
        assert report.total_sales == 270000
        assert report.deposit_proof_ref == "blob://deposit"
        assert report.report_date == local_today()

        shift = result.shift
        assert shift.status == SHIFT_COMPLETED
        assert shift.report_submitted is True
        assert shift.shift_end_time is not None
        assert shift.total_sales == 270000
        assert shift.cash_collected == 150000
        assert shift.total_transactions == 4

        assert len(result.expenses) == 2

    def test_deposit_floors_at_zero(self, db_session):
        result = report_service.submit_shift_report(RIDER, expenses=[{"expense_type": "fuel", "amount": 50000}])

        assert result.totals.deposit == 0
        assert result.report.cash_collected == 0
        assert result.totals.total_expenses == 50000

    def test_sales_before_shift_start_are_counted(self, db_session, stocked, sale):
        # Sale recorded at local midnight, before the shift was opened
        from riderops.time_utils import local_day_bounds
        start, _end = local_day_bounds(local_today())
        sale(RIDER, 25000, "cash", transaction_date=start)
        _sell_out(stocked)

        result = report_service.submit_shift_report(RIDER)

        assert result.totals.cash_sales == 25000

    def test_lazy_shift_creation_without_receipts(self, db_session):
        result = report_service.submit_shift_report(RIDER)

        assert result.shift.shift_number == 1
        assert result.shift.status == SHIFT_COMPLETED
        assert db_session.query(Shift).count() == 1

    def test_completion_callback_runs_after_commit(self, db_session):
        seen = []

        def on_completed(result):
            seen.append(db.session.query(DailyReport).filter_by(shift_id=result.shift.id).count())

        report_service.submit_shift_report(RIDER, on_completed=on_completed)

        assert seen == [1]


class TestSubmitIdempotency:

    def test_submit_twice_creates_one_report(self, db_session, stocked):
        _sell_out(stocked)
        expenses = [{"expense_type": "fuel", "amount": 10000}]

        first = report_service.submit_shift_report(RIDER, expenses=expenses)
        with pytest.raises(AlreadySubmitted):
            report_service.submit_shift_report(RIDER, expenses=expenses)

        assert db_session.query(DailyReport).count() == 1
        assert db_session.query(OperationalExpense).count() == 1
        assert db_session.query(Shift).filter_by(status=SHIFT_COMPLETED).count() == 1
        assert db_session.query(Shift).count() == 1
        assert first.shift.shift_number == 1

    def test_retry_after_partial_write_keeps_first_figures(self, db_session, stocked):
        """A report row left by an earlier attempt is neither duplicated nor overwritten."""
        result = stock_service.confirm_receive(
            stock_service.send_stock(branch_id=1, rider_id=RIDER, items=[{"product_id": 1, "quantity": 1}])[0].id
        )
        stock_service.record_sale(RIDER, 1, 1)
        shift_id = result.shift.id
        db_session.add(DailyReport(
            rider_id=RIDER,
            shift_id=shift_id,
            report_date=local_today(),
            total_sales=1,
            cash_collected=1,
        ))
        db_session.add(OperationalExpense(
            rider_id=RIDER,
            shift_id=shift_id,
            line_key="line-a",
            expense_type="fuel",
            amount=5000,
            expense_date=local_today(),
        ))
        db_session.commit()

        submitted = report_service.submit_shift_report(RIDER, expenses=[
            {"expense_type": "fuel", "amount": 5000, "client_ref": "line-a"},
            {"expense_type": "ice", "amount": 2000, "client_ref": "line-b"},
        ])

        assert db_session.query(DailyReport).count() == 1
        assert submitted.report.total_sales == 1
        assert db_session.query(OperationalExpense).filter_by(shift_id=shift_id).count() == 2
        assert submitted.totals.total_expenses == 7000
        assert submitted.shift.status == SHIFT_COMPLETED

    def test_explicit_shift_id_already_submitted(self, db_session):
        first = report_service.submit_shift_report(RIDER)

        with pytest.raises(AlreadySubmitted):
            report_service.submit_shift_report(RIDER, shift_id=first.shift.id)


class TestSubmitPhotos:

    def test_receipt_upload_failure_keeps_expense(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.extensions, "photo_storage", _FailingStorage())

        result = report_service.submit_shift_report(
            RIDER,
            expenses=[{"expense_type": "fuel", "amount": 10000, "receipt_photo": "aGVsbG8="}],
            deposit_proof_photo="aGVsbG8=",
        )

        assert len(result.expenses) == 1
        assert result.expenses[0].receipt_photo_ref is None
        assert result.report.deposit_proof_ref is None
        assert result.degraded_photos == ["receipt_photo", "deposit_proof"]

    def test_receipt_upload_success(self, db_session):
        result = report_service.submit_shift_report(
            RIDER,
            expenses=[{"expense_type": "fuel", "amount": 10000, "receipt_photo": "aGVsbG8="}],
        )

        assert result.expenses[0].receipt_photo_ref.startswith("local://receipt-")
        assert result.degraded_photos == []


class TestApproveReport:

    def test_approval_sets_verification_once(self, db_session):
        submitted = report_service.submit_shift_report(RIDER)
        shift_id = submitted.shift.id

        report, shift = report_service.approve_report(shift_id, user_id=900)

        assert report.verified_by_user_id == 900
        assert report.verified_at is not None
        assert shift.report_verified is True
        assert report.cash_collected == submitted.totals.deposit

        with pytest.raises(PreconditionFailed):
            report_service.approve_report(shift_id, user_id=901)

    def test_open_shift_cannot_be_approved(self, db_session, stocked):
        shift = stock_service.confirm_receive(
            stock_service.send_stock(branch_id=1, rider_id=RIDER, items=[{"product_id": 1, "quantity": 1}])[0].id
        ).shift

        with pytest.raises(PreconditionFailed):
            report_service.approve_report(shift.id, user_id=900)


class TestRunningSummary:

    def test_summary_reports_live_figures(self, db_session, stocked, sale):
        stocked(RIDER, 1, 5)
        sale(RIDER, 40000, "cash")
        sale(RIDER, 10000, "qris")

        summary = report_service.running_summary(RIDER)

        assert summary["sales"]["cash"] == 40000
        assert summary["sales"]["total"] == 50000
        assert summary["expected_deposit"] == 40000
        assert summary["outstanding_lines"] == 1
        assert summary["shift"]["status"] == SHIFT_ACTIVE

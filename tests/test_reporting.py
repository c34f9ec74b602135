"""
Tests for portfolio reports, filters and the loan timeline
"""

from datetime import date

from rt_lending.cashflow import TransactionType
from rt_lending.loans import Loan, LoanStatus
from rt_lending.reporting import (
    StepState, available_years, filter_loans, filter_transactions,
    loan_timeline, loans_for_borrower, portfolio_summary
)
from rt_lending.seed import demo_loans, demo_transactions


class TestPortfolioSummary:
    """Test loan book totals over the bootstrap loans"""

    def setup_method(self):
        self.summary = portfolio_summary(demo_loans())

    def test_status_counts(self):
        assert self.summary.total_loans == 5
        assert self.summary.pending_count == 2
        assert self.summary.active_count == 1
        assert self.summary.verifying_count == 1
        assert self.summary.paid_count == 1
        assert self.summary.rejected_count == 0

    def test_principal_figures(self):
        """Test totals over all loans and over disbursed loans"""
        assert self.summary.total_principal == 5_750_000
        assert self.summary.potential_interest == 1_150_000
        assert self.summary.principal_lent == 2_250_000
        assert self.summary.interest_earned == 150_000

    def test_outstanding(self):
        """Test approved and verifying loans are outstanding"""
        assert self.summary.outstanding_principal == 1_500_000
        assert self.summary.outstanding_total_due == 1_800_000

    def test_rejected_loans_are_not_lent(self):
        """Test a rejected loan counts in totals but not in money lent"""
        rejected = Loan(id="9", borrower_name="Ani", amount=400_000,
                        submission_date=date(2023, 11, 1), status=LoanStatus.REJECTED,
                        rejection_date=date(2023, 11, 2))
        summary = portfolio_summary(demo_loans() + [rejected])

        assert summary.rejected_count == 1
        assert summary.total_principal == 6_150_000
        assert summary.principal_lent == 2_250_000

    def test_empty(self):
        summary = portfolio_summary([])
        assert summary.to_dict()['total_loans'] == 0
        assert summary.principal_lent == 0


class TestFilters:
    """Test list filters"""

    def test_filter_loans_by_status(self):
        """Test status filter keeps newest first"""
        pending = filter_loans(demo_loans(), status=LoanStatus.PENDING)
        assert [loan.id for loan in pending] == ["5", "3"]

    def test_filter_loans_by_year(self):
        assert filter_loans(demo_loans(), year=2022) == []
        assert len(filter_loans(demo_loans(), year=2023)) == 5

    def test_filter_transactions(self):
        """Test type filter and ordering"""
        expenses = filter_transactions(demo_transactions(), TransactionType.EXPENSE)

        assert [t.id for t in expenses] == ["L2", "L1", "L4_OUT", "3"]

    def test_available_years(self):
        """Test distinct years, latest first"""
        extra = Loan(id="9", borrower_name="Ani", amount=1, submission_date=date(2024, 2, 1))
        assert available_years(demo_loans() + [extra], demo_transactions()) == [2024, 2023]
        assert available_years() == []

    def test_loans_for_borrower(self):
        """Test case-insensitive borrower match"""
        loans = loans_for_borrower(demo_loans(), "  rina wati")
        assert [loan.id for loan in loans] == ["4"]


class TestLoanTimeline:
    """Test the borrower-facing progress view"""

    def setup_method(self):
        self.loans = {loan.id: loan for loan in demo_loans()}

    def test_pending_loan(self):
        """Test a new request: submitted done, approval next"""
        steps = loan_timeline(self.loans["3"])

        assert [s.state for s in steps] == [
            StepState.COMPLETED, StepState.CURRENT, StepState.PENDING, StepState.PENDING
        ]
        assert steps[0].reached_on == date(2023, 10, 10)
        assert steps[1].reached_on is None

    def test_verifying_loan(self):
        """Test a loan waiting for the RT to confirm payment"""
        steps = loan_timeline(self.loans["2"])

        assert [s.state for s in steps] == [
            StepState.COMPLETED, StepState.COMPLETED, StepState.COMPLETED, StepState.CURRENT
        ]
        assert steps[2].reached_on == date(2023, 10, 20)

    def test_paid_loan(self):
        """Test every stage completed with its date"""
        steps = loan_timeline(self.loans["4"])

        assert all(s.state == StepState.COMPLETED for s in steps)
        assert steps[-1].to_dict() == {
            'status': "PAID",
            'label': "Lunas",
            'state': "completed",
            'date': "2023-10-01",
        }

    def test_rejected_loan(self):
        """Test a rejected loan ends at the rejection"""
        loan = Loan(id="9", borrower_name="Ani", amount=400_000,
                    submission_date=date(2023, 11, 1), status=LoanStatus.REJECTED,
                    rejection_date=date(2023, 11, 2))
        steps = loan_timeline(loan)

        assert [s.status for s in steps] == [LoanStatus.PENDING, LoanStatus.REJECTED]
        assert steps[1].state == StepState.REJECTED
        assert steps[1].reached_on == date(2023, 11, 2)

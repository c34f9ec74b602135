"""
Tests for the loan model and lifecycle engine
"""

import pytest
from datetime import date

from rt_lending.exceptions import IllegalTransitionError, ValidationError
from rt_lending.loans import (
    Loan, LoanStatus, LEGAL_TRANSITIONS, STATUS_DATE_FIELDS,
    check_transition, transition
)


def make_loan(**kwargs):
    params = dict(id="100", borrower_name="Budi Santoso", amount=1_000_000,
                  submission_date=date(2023, 10, 10))
    params.update(kwargs)
    return Loan(**params)


class TestLoanStatus:
    """Test status parsing and terminal states"""

    def test_parse_by_name_and_label(self):
        """Test statuses parse from enum names and display labels"""
        assert LoanStatus.parse("APPROVED") == LoanStatus.APPROVED
        assert LoanStatus.parse("Lunas") == LoanStatus.PAID
        assert LoanStatus.parse(LoanStatus.REJECTED) == LoanStatus.REJECTED

    def test_parse_unknown(self):
        """Test unknown status raises ValidationError"""
        with pytest.raises(ValidationError):
            LoanStatus.parse("CLOSED")
        with pytest.raises(ValidationError):
            LoanStatus.parse(None)

    def test_terminal_statuses(self):
        """Test only PAID and REJECTED are terminal"""
        assert LoanStatus.PAID.is_terminal
        assert LoanStatus.REJECTED.is_terminal
        assert not LoanStatus.PENDING.is_terminal
        assert not LoanStatus.APPROVED.is_terminal
        assert not LoanStatus.PAYMENT_VERIFYING.is_terminal


class TestLoanModel:
    """Test Loan construction and serialization"""

    def test_new_loan_is_pending(self):
        """Test defaults of a new loan"""
        loan = make_loan()
        assert loan.status == LoanStatus.PENDING
        assert loan.approval_date is None
        assert loan.interest == 200_000
        assert loan.total_due == 1_200_000
        assert loan.is_consistent()

    def test_invalid_amount(self):
        """Test non-positive or fractional amounts are rejected"""
        for amount in [0, -1, 10.5, True]:
            with pytest.raises(ValidationError):
                make_loan(amount=amount)

    def test_empty_name(self):
        """Test blank borrower name is rejected"""
        with pytest.raises(ValidationError):
            make_loan(borrower_name="   ")

    def test_storage_round_trip(self):
        """Test to_dict/from_dict keep every field"""
        loan = make_loan(status=LoanStatus.PAYMENT_VERIFYING,
                         approval_date=date(2023, 10, 12),
                         payment_admin_date=date(2023, 11, 1))
        restored = Loan.from_dict(loan.to_dict())
        assert restored == loan

    def test_wire_shape(self):
        """Test spreadsheet field names and omitted empty dates"""
        loan = make_loan(status=LoanStatus.APPROVED, approval_date=date(2023, 10, 12))
        wire = loan.to_wire()

        assert wire == {
            'id': "100",
            'borrowerName': "Budi Santoso",
            'amount': 1_000_000,
            'date': "2023-10-10",
            'status': "Belum Lunas (Aktif)",
            'approvalDate': "2023-10-12",
        }
        assert Loan.from_wire(wire) == loan

    def test_from_wire_accepts_spreadsheet_quirks(self):
        """Test numeric ids, string amounts and timestamps"""
        loan = Loan.from_wire({
            'id': 1697000000000,
            'borrowerName': " Siti Aminah ",
            'amount': "500000",
            'date': "2023-10-05T00:00:00.000Z",
            'status': "PAYMENT_VERIFYING",
            'approvalDate': "2023-10-06",
            'paymentAdminDate': "2023-10-20",
        })
        assert loan.id == "1697000000000"
        assert loan.borrower_name == "Siti Aminah"
        assert loan.amount == 500_000
        assert loan.submission_date == date(2023, 10, 5)
        assert loan.status == LoanStatus.PAYMENT_VERIFYING

    def test_from_wire_malformed(self):
        """Test malformed records raise"""
        for record_id in [None, "", "  "]:
            with pytest.raises(ValidationError):
                Loan.from_wire({'id': record_id, 'borrowerName': "X", 'amount': 1,
                                'date': "2023-01-01", 'status': "PENDING"})
        with pytest.raises(ValidationError):
            Loan.from_wire({'borrowerName': "X", 'amount': 1, 'date': "2023-01-01",
                            'status': "PENDING"})
        with pytest.raises(ValidationError):
            Loan.from_wire({'id': "1", 'borrowerName': "X", 'amount': "abc",
                            'date': "2023-01-01", 'status': "PENDING"})

    def test_inconsistent_loan_detected(self):
        """Test status that disagrees with the dates"""
        loan = make_loan(status=LoanStatus.PAID, approval_date=date(2023, 10, 12))
        assert loan.derived_status() == LoanStatus.APPROVED
        assert not loan.is_consistent()

        both = make_loan(status=LoanStatus.REJECTED, approval_date=date(2023, 10, 12),
                         rejection_date=date(2023, 10, 13))
        assert not both.is_consistent()


class TestTransitionTable:
    """Test the legal-edge table"""

    def test_legal_edges(self):
        """Test every legal edge is accepted"""
        for current, targets in LEGAL_TRANSITIONS.items():
            for target in targets:
                assert check_transition(current, target) == target

    def test_terminal_states_never_move(self):
        """Test nothing leaves PAID or REJECTED, in either mode"""
        for current in (LoanStatus.PAID, LoanStatus.REJECTED):
            for target in LoanStatus:
                for strict in (True, False):
                    with pytest.raises(IllegalTransitionError):
                        check_transition(current, target, strict=strict)

    def test_skipping_stages_is_illegal(self):
        """Test PENDING -> PAID is refused"""
        with pytest.raises(IllegalTransitionError) as exc_info:
            check_transition(LoanStatus.PENDING, LoanStatus.PAID)

        assert exc_info.value.current == LoanStatus.PENDING
        assert exc_info.value.requested == LoanStatus.PAID

    def test_same_status_is_illegal_when_strict(self):
        """Test re-requesting the current status"""
        with pytest.raises(IllegalTransitionError):
            check_transition(LoanStatus.APPROVED, LoanStatus.APPROVED)

    def test_pending_is_never_a_target(self):
        """Test nothing moves back to PENDING"""
        for strict in (True, False):
            with pytest.raises(IllegalTransitionError):
                check_transition(LoanStatus.APPROVED, LoanStatus.PENDING, strict=strict)

    def test_lenient_mode(self):
        """Test lenient mode allows skips and re-dating but not going back"""
        assert check_transition(LoanStatus.PENDING, LoanStatus.PAID, strict=False) == LoanStatus.PAID
        assert check_transition(LoanStatus.APPROVED, LoanStatus.APPROVED,
                                strict=False) == LoanStatus.APPROVED

        with pytest.raises(IllegalTransitionError):
            check_transition(LoanStatus.PAYMENT_VERIFYING, LoanStatus.APPROVED, strict=False)
        with pytest.raises(IllegalTransitionError):
            check_transition(LoanStatus.APPROVED, LoanStatus.REJECTED, strict=False)


class TestTransition:
    """Test in-place status changes"""

    def test_full_lifecycle_keeps_history(self):
        """Test each stage sets its own date and keeps earlier ones"""
        loan = make_loan()

        assert transition(loan, LoanStatus.APPROVED, date(2023, 10, 12)) == "approval_date"
        transition(loan, LoanStatus.PAYMENT_VERIFYING, date(2023, 11, 1))
        transition(loan, LoanStatus.PAID, date(2023, 11, 5))

        assert loan.status == LoanStatus.PAID
        assert loan.approval_date == date(2023, 10, 12)
        assert loan.payment_admin_date == date(2023, 11, 1)
        assert loan.paid_date == date(2023, 11, 5)
        assert loan.rejection_date is None
        assert loan.is_consistent()

    def test_rejection(self):
        """Test PENDING -> REJECTED sets only the rejection date"""
        loan = make_loan()
        transition(loan, LoanStatus.REJECTED, date(2023, 10, 11))

        assert loan.status == LoanStatus.REJECTED
        assert loan.rejection_date == date(2023, 10, 11)
        assert loan.approval_date is None
        assert not loan.was_disbursed

    def test_backdating_allowed(self):
        """Test effective date may precede submission"""
        loan = make_loan()
        transition(loan, LoanStatus.APPROVED, date(2023, 1, 1))
        assert loan.approval_date == date(2023, 1, 1)

    def test_missing_date(self):
        """Test a status change needs a date"""
        loan = make_loan()
        with pytest.raises(ValidationError):
            transition(loan, LoanStatus.APPROVED, None)
        assert loan.status == LoanStatus.PENDING

    def test_illegal_transition_leaves_loan_untouched(self):
        """Test a refused change does not mutate the loan"""
        loan = make_loan()
        with pytest.raises(IllegalTransitionError):
            transition(loan, LoanStatus.PAID, date(2023, 11, 5))
        assert loan.status == LoanStatus.PENDING
        assert loan.paid_date is None

    def test_date_field_mapping(self):
        """Test one date field per non-initial status"""
        assert set(STATUS_DATE_FIELDS) == set(LoanStatus) - {LoanStatus.PENDING}
        assert len(set(STATUS_DATE_FIELDS.values())) == 4

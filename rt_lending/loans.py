"""
Loan Module

Loan records and the loan lifecycle engine: the status state machine,
the stage-to-date mapping, and in-place status transitions.

Lifecycle:
    PENDING -> APPROVED -> PAYMENT_VERIFYING -> PAID
    PENDING -> REJECTED
REJECTED and PAID are terminal.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .cashflow import parse_amount, parse_date, parse_record_id
from .exceptions import IllegalTransitionError, ValidationError
from . import formulas


class LoanStatus(Enum):
    """Loan lifecycle states; values are the labels shown to users"""
    PENDING = "Menunggu Validasi RT"
    APPROVED = "Belum Lunas (Aktif)"
    PAYMENT_VERIFYING = "Verifikasi Pembayaran (RT)"
    PAID = "Lunas"
    REJECTED = "Ditolak"

    @classmethod
    def parse(cls, value: Any) -> 'LoanStatus':
        """Accept a LoanStatus, its name, or its label"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            if value in cls.__members__:
                return cls[value]
            for status in cls:
                if status.value == value:
                    return status
        raise ValidationError("status", f"Unknown loan status: {value!r}")

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[LoanStatus] = frozenset({LoanStatus.REJECTED, LoanStatus.PAID})

LEGAL_TRANSITIONS: Mapping[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.PAYMENT_VERIFYING}),
    LoanStatus.PAYMENT_VERIFYING: frozenset({LoanStatus.PAID}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.PAID: frozenset(),
}

STAGE_RANK: Mapping[LoanStatus, int] = {
    LoanStatus.PENDING: 0,
    LoanStatus.APPROVED: 1,
    LoanStatus.PAYMENT_VERIFYING: 2,
    LoanStatus.PAID: 3,
}

# Each stage records exactly one date field
STATUS_DATE_FIELDS: Mapping[LoanStatus, str] = {
    LoanStatus.APPROVED: "approval_date",
    LoanStatus.REJECTED: "rejection_date",
    LoanStatus.PAYMENT_VERIFYING: "payment_admin_date",
    LoanStatus.PAID: "paid_date",
}

WIRE_DATE_FIELDS: Mapping[str, str] = {
    "approval_date": "approvalDate",
    "rejection_date": "rejectionDate",
    "payment_admin_date": "paymentAdminDate",
    "paid_date": "paidDate",
}


@dataclass
class Loan:
    """A loan request and the dates of each lifecycle stage it reached"""
    id: str
    borrower_name: str
    amount: int                          # principal, whole rupiah
    submission_date: date
    status: LoanStatus = LoanStatus.PENDING

    approval_date: Optional[date] = None
    rejection_date: Optional[date] = None
    payment_admin_date: Optional[date] = None
    paid_date: Optional[date] = None

    def __post_init__(self):
        if not isinstance(self.amount, int) or isinstance(self.amount, bool) or self.amount <= 0:
            raise ValidationError("amount", "Loan amount must be a positive whole number")
        if not self.borrower_name or not self.borrower_name.strip():
            raise ValidationError("borrower_name", "Borrower name is required")

    @property
    def interest(self) -> int:
        return formulas.interest(self.amount)

    @property
    def total_due(self) -> int:
        return formulas.total_due(self.amount)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def was_disbursed(self) -> bool:
        """Funds went out: approved at some point and never rejected"""
        return self.approval_date is not None and self.rejection_date is None

    def derived_status(self) -> LoanStatus:
        """Furthest stage reached according to the populated dates"""
        if self.rejection_date is not None:
            return LoanStatus.REJECTED
        if self.paid_date is not None:
            return LoanStatus.PAID
        if self.payment_admin_date is not None:
            return LoanStatus.PAYMENT_VERIFYING
        if self.approval_date is not None:
            return LoanStatus.APPROVED
        return LoanStatus.PENDING

    def is_consistent(self) -> bool:
        """Status matches the dates, and the loan is not both approved and rejected"""
        if self.approval_date is not None and self.rejection_date is not None:
            return False
        return self.status == self.derived_status()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = {
            'id': self.id,
            'borrower_name': self.borrower_name,
            'amount': self.amount,
            'submission_date': self.submission_date.isoformat(),
            'status': self.status.name,
        }
        for field_name in STATUS_DATE_FIELDS.values():
            value = getattr(self, field_name)
            result[field_name] = value.isoformat() if value else None
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        """Create instance from a storage dictionary"""
        dates = {
            field_name: parse_date(data[field_name], field_name) if data.get(field_name) else None
            for field_name in STATUS_DATE_FIELDS.values()
        }
        return cls(
            id=data['id'],
            borrower_name=data['borrower_name'],
            amount=data['amount'],
            submission_date=parse_date(data['submission_date'], 'submission_date'),
            status=LoanStatus[data['status']],
            **dates
        )

    def to_wire(self) -> Dict[str, Any]:
        """Shape used by the spreadsheet service"""
        payload = {
            'id': self.id,
            'borrowerName': self.borrower_name,
            'amount': self.amount,
            'date': self.submission_date.isoformat(),
            'status': self.status.value,
        }
        for field_name, wire_name in WIRE_DATE_FIELDS.items():
            value = getattr(self, field_name)
            if value:
                payload[wire_name] = value.isoformat()
        return payload

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'Loan':
        """Parse a spreadsheet record; raises ValidationError/KeyError when malformed"""
        dates = {
            field_name: parse_date(data[wire_name], wire_name) if data.get(wire_name) else None
            for field_name, wire_name in WIRE_DATE_FIELDS.items()
        }
        return cls(
            id=parse_record_id(data.get('id')),
            borrower_name=str(data.get('borrowerName') or '').strip(),
            amount=parse_amount(data.get('amount')),
            submission_date=parse_date(data.get('date'), 'date'),
            status=LoanStatus.parse(data.get('status')),
            **dates
        )


def check_transition(current: LoanStatus, requested: LoanStatus, strict: bool = True) -> LoanStatus:
    """
    Validate a requested status change against the lifecycle.

    Args:
        current: Status the loan is in now
        requested: Status the caller asks for
        strict: Enforce LEGAL_TRANSITIONS. When False, stages may be
            skipped or re-dated, but a loan still never moves backward,
            never leaves a terminal state, and is only rejected while
            pending.

    Returns:
        The requested status

    Raises:
        IllegalTransitionError: if the edge is not allowed
    """
    if requested == LoanStatus.PENDING or current.is_terminal:
        raise IllegalTransitionError(current, requested)
    if strict:
        if requested not in LEGAL_TRANSITIONS[current]:
            raise IllegalTransitionError(current, requested)
    elif requested == LoanStatus.REJECTED:
        if current != LoanStatus.PENDING:
            raise IllegalTransitionError(current, requested)
    elif STAGE_RANK[requested] < STAGE_RANK[current]:
        raise IllegalTransitionError(current, requested)
    return requested


def transition(loan: Loan, new_status: LoanStatus, effective_date: date,
               strict: bool = True) -> str:
    """
    Move a loan to a new status in place.

    Sets the status and the one date field mapped to it; dates from
    earlier stages are kept. The effective date comes from the caller so
    stages can be backdated.

    Returns:
        Name of the date field that was set
    """
    if effective_date is None:
        raise ValidationError("effective_date", "A date is required for a status change")
    check_transition(loan.status, new_status, strict=strict)

    field_name = STATUS_DATE_FIELDS[new_status]
    loan.status = new_status
    setattr(loan, field_name, effective_date)
    return field_name

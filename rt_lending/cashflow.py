"""
Cash Flow Module

Cash ledger rows: manual income and expense entries, the opening balance,
and the disbursement/repayment rows generated from loan events.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import ValidationError


INITIAL_BALANCE_DESCRIPTION = "Saldo Awal Kas RT"


class TransactionType(Enum):
    """Direction of a cash movement"""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionCategory(Enum):
    """Origin of a ledger row"""
    MANUAL = "MANUAL"
    LOAN_DISBURSEMENT = "LOAN_DISBURSEMENT"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    INITIAL_BALANCE = "INITIAL_BALANCE"

    @property
    def is_loan_linked(self) -> bool:
        return self in (TransactionCategory.LOAN_DISBURSEMENT,
                        TransactionCategory.LOAN_REPAYMENT)


def parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            # Spreadsheet exports sometimes carry a time part
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError(field_name, f"Invalid date for {field_name}: {value!r}")


def parse_amount(value: Any, field_name: str = "amount") -> int:
    if isinstance(value, bool):
        raise ValidationError(field_name, f"Invalid amount: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(field_name, f"Amount must be a whole number, got {value!r}")


def parse_record_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        raise ValidationError("id", f"Invalid id: {value!r}")
    record_id = str(value).strip()
    if not record_id:
        raise ValidationError("id", "Record id must not be empty")
    return record_id


@dataclass
class CashTransaction:
    """A single row of the cash ledger"""
    id: str
    date: date
    description: str
    amount: int
    type: TransactionType
    category: TransactionCategory = TransactionCategory.MANUAL
    related_loan_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.amount, int) or isinstance(self.amount, bool) or self.amount <= 0:
            raise ValidationError("amount", "Transaction amount must be a positive whole number")
        if self.category.is_loan_linked and not self.related_loan_id:
            raise ValidationError(
                "related_loan_id",
                f"{self.category.value} transactions must reference a loan"
            )

    @property
    def is_loan_linked(self) -> bool:
        return self.category.is_loan_linked

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'description': self.description,
            'amount': self.amount,
            'type': self.type.value,
            'category': self.category.value,
            'related_loan_id': self.related_loan_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CashTransaction':
        """Create instance from a storage dictionary"""
        return cls(
            id=data['id'],
            date=parse_date(data['date'], 'date'),
            description=data['description'],
            amount=parse_amount(data['amount']),
            type=TransactionType(data['type']),
            category=TransactionCategory(data.get('category', 'MANUAL')),
            related_loan_id=data.get('related_loan_id'),
        )

    def to_wire(self) -> Dict[str, Any]:
        """Shape used by the spreadsheet service"""
        payload = {
            'id': self.id,
            'date': self.date.isoformat(),
            'description': self.description,
            'amount': self.amount,
            'type': self.type.value,
            'category': self.category.value,
        }
        if self.related_loan_id:
            payload['relatedLoanId'] = self.related_loan_id
        return payload

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'CashTransaction':
        """Parse a spreadsheet record; raises ValidationError/KeyError/ValueError when malformed"""
        return cls(
            id=parse_record_id(data.get('id')),
            date=parse_date(data.get('date'), 'date'),
            description=str(data.get('description', '')),
            amount=parse_amount(data.get('amount')),
            type=TransactionType(data['type']),
            category=TransactionCategory(data.get('category') or 'MANUAL'),
            related_loan_id=str(data['relatedLoanId']) if data.get('relatedLoanId') else None,
        )

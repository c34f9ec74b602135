"""
Ledger Synchronization Module

Keeps the cash ledger in step with loan lifecycle events. Approval pays
the principal out (EXPENSE); confirmed payment brings principal plus
interest back (INCOME). Each event produces at most one ledger row per
loan, no matter how often it is replayed.

Generated rows are ordinary ledger rows afterwards: they can be edited or
deleted by hand, and a deleted row is not re-created.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Mapping, Optional

from .cashflow import CashTransaction, TransactionCategory, TransactionType
from .formulas import RepaymentSplit, inverse_split, total_due
from .loans import Loan, LoanStatus
from .storage import TimeBasedIdGenerator


@dataclass(frozen=True)
class LedgerRule:
    """What a loan status change writes to the cash ledger"""
    category: TransactionCategory
    type: TransactionType
    amount: Callable[[Loan], int]
    description: str


LEDGER_RULES: Mapping[LoanStatus, LedgerRule] = {
    LoanStatus.APPROVED: LedgerRule(
        category=TransactionCategory.LOAN_DISBURSEMENT,
        type=TransactionType.EXPENSE,
        amount=lambda loan: loan.amount,
        description="Pencairan Pinjaman: {name}",
    ),
    LoanStatus.PAYMENT_VERIFYING: LedgerRule(
        category=TransactionCategory.LOAN_REPAYMENT,
        type=TransactionType.INCOME,
        amount=lambda loan: total_due(loan.amount),
        description="Pelunasan Pinjaman: {name}",
    ),
}


def find_linked(transactions: Iterable[CashTransaction], loan_id: str,
                category: TransactionCategory) -> Optional[CashTransaction]:
    """First ledger row of a category generated for a loan (linear scan)"""
    for transaction in transactions:
        if transaction.category == category and transaction.related_loan_id == loan_id:
            return transaction
    return None


def linked_transactions(transactions: Iterable[CashTransaction], loan_id: str) -> List[CashTransaction]:
    """All ledger rows that reference a loan"""
    return [t for t in transactions if t.related_loan_id == loan_id]


class LedgerSynchronizer:
    """Creates the ledger row, if any, owed for a loan status change"""

    def __init__(self, id_generator: Optional[TimeBasedIdGenerator] = None):
        self.id_generator = id_generator or TimeBasedIdGenerator()

    def entry_for(self, loan: Loan, new_status: LoanStatus, effective_date: date,
                  transactions: Iterable[CashTransaction]) -> Optional[CashTransaction]:
        """
        Build the ledger row for a transition that has just been applied.

        Args:
            loan: Loan after the transition
            new_status: Status the loan moved to
            effective_date: Date the stage took effect; becomes the row date
            transactions: Current ledger, checked for an existing row

        Returns:
            A new CashTransaction for the caller to store, or None when the
            status writes nothing or the row already exists
        """
        rule = LEDGER_RULES.get(new_status)
        if rule is None:
            return None
        if find_linked(transactions, loan.id, rule.category) is not None:
            return None

        return CashTransaction(
            id=self.id_generator.next_id(),
            date=effective_date,
            description=rule.description.format(name=loan.borrower_name),
            amount=rule.amount(loan),
            type=rule.type,
            category=rule.category,
            related_loan_id=loan.id,
        )


@dataclass(frozen=True)
class RepaymentBreakdown:
    """Principal/interest split of one repayment row"""
    transaction_id: str
    loan_id: Optional[str]
    date: date
    split: RepaymentSplit

    def to_dict(self) -> dict:
        return {
            'transaction_id': self.transaction_id,
            'loan_id': self.loan_id,
            'date': self.date.isoformat(),
            'total': self.split.total,
            'principal': self.split.principal,
            'interest': self.split.interest,
            'exact': self.split.exact,
        }


def repayment_breakdown(transactions: Iterable[CashTransaction]) -> List[RepaymentBreakdown]:
    """Split every repayment row into principal and interest from its amount alone"""
    return [
        RepaymentBreakdown(
            transaction_id=t.id,
            loan_id=t.related_loan_id,
            date=t.date,
            split=inverse_split(t.amount),
        )
        for t in transactions
        if t.category == TransactionCategory.LOAN_REPAYMENT
    ]

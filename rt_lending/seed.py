"""Bootstrap data for the RT lending book

The store starts with this data so the views have something to show
before (or without) a bulk load from the spreadsheet service:
- 5 loans, one in each stage except REJECTED plus a second PENDING
- 7 cash rows: opening balance, cleaning dues, a street-lamp purchase,
  and the disbursements/repayment that match the loans
"""

from datetime import date
from typing import List

from .cashflow import (
    CashTransaction, TransactionCategory, TransactionType, INITIAL_BALANCE_DESCRIPTION
)
from .loans import Loan, LoanStatus


def demo_loans() -> List[Loan]:
    return [
        Loan(id='1', borrower_name='Budi Santoso', amount=1_000_000,
             submission_date=date(2023, 10, 1), status=LoanStatus.APPROVED,
             approval_date=date(2023, 10, 2)),
        Loan(id='2', borrower_name='Siti Aminah', amount=500_000,
             submission_date=date(2023, 10, 5), status=LoanStatus.PAYMENT_VERIFYING,
             approval_date=date(2023, 10, 6), payment_admin_date=date(2023, 10, 20)),
        Loan(id='3', borrower_name='Joko Widodo', amount=2_000_000,
             submission_date=date(2023, 10, 10)),
        Loan(id='4', borrower_name='Rina Wati', amount=750_000,
             submission_date=date(2023, 9, 15), status=LoanStatus.PAID,
             approval_date=date(2023, 9, 16), payment_admin_date=date(2023, 9, 30),
             paid_date=date(2023, 10, 1)),
        Loan(id='5', borrower_name='Ahmad Dahlan', amount=1_500_000,
             submission_date=date(2023, 10, 12)),
    ]


def demo_transactions() -> List[CashTransaction]:
    # Siti Aminah's repayment row is missing on purpose; the book is kept
    # as it was found.
    return [
        CashTransaction(id='1', date=date(2023, 9, 1), description=INITIAL_BALANCE_DESCRIPTION,
                        amount=10_000_000, type=TransactionType.INCOME,
                        category=TransactionCategory.INITIAL_BALANCE),
        CashTransaction(id='2', date=date(2023, 9, 5), description='Iuran Kebersihan Warga',
                        amount=350_000, type=TransactionType.INCOME),
        CashTransaction(id='3', date=date(2023, 9, 10), description='Pembelian Lampu Jalan (3 pcs)',
                        amount=150_000, type=TransactionType.EXPENSE),
        CashTransaction(id='L1', date=date(2023, 10, 2), description='Pencairan Pinjaman: Budi Santoso',
                        amount=1_000_000, type=TransactionType.EXPENSE,
                        category=TransactionCategory.LOAN_DISBURSEMENT, related_loan_id='1'),
        CashTransaction(id='L2', date=date(2023, 10, 6), description='Pencairan Pinjaman: Siti Aminah',
                        amount=500_000, type=TransactionType.EXPENSE,
                        category=TransactionCategory.LOAN_DISBURSEMENT, related_loan_id='2'),
        CashTransaction(id='L4_OUT', date=date(2023, 9, 16), description='Pencairan Pinjaman: Rina Wati',
                        amount=750_000, type=TransactionType.EXPENSE,
                        category=TransactionCategory.LOAN_DISBURSEMENT, related_loan_id='4'),
        CashTransaction(id='L4_IN', date=date(2023, 9, 30), description='Pelunasan Pinjaman: Rina Wati',
                        amount=900_000, type=TransactionType.INCOME,
                        category=TransactionCategory.LOAN_REPAYMENT, related_loan_id='4'),
    ]


def seed_store(store) -> None:
    """Load the bootstrap data into a store without emitting change events"""
    store.replace_all(demo_loans(), demo_transactions())

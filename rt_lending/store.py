"""
Lending Store Module

The application's single owner of loans and ledger rows. Every change
goes through an intention-revealing method that checks the actor's
permission, validates input, applies the change, logs it, and publishes
one change event per record touched. A status change is not complete
until the ledger rules have run for it.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .cashflow import (
    CashTransaction, TransactionCategory, TransactionType, INITIAL_BALANCE_DESCRIPTION
)
from .events import ChangeAction, ChangeEvent, EventDispatcher
from .exceptions import (
    LoanNotFoundError, TransactionNotFoundError, ValidationError
)
from .formulas import LedgerSummary, summarize_ledger
from .ledger_sync import LedgerSynchronizer, find_linked, linked_transactions
from .loans import Loan, LoanStatus, WIRE_DATE_FIELDS, transition as apply_transition
from .logging_config import log_action
from .rbac import Actor, Permission, TRANSITION_PERMISSIONS
from .reporting import PortfolioSummary, portfolio_summary
from .storage import InMemoryStorage, StorageInterface, TimeBasedIdGenerator
from .sync_client import RemoteSnapshot


LOAN_DELETE_WARNING = (
    "This loan has {count} linked cash transaction(s). Deleting the loan "
    "leaves them in the cash ledger; remove or adjust them by hand if needed."
)
TRANSACTION_DELETE_WARNING = (
    "This transaction is linked to loan {loan_id}. Deleting it does not "
    "change the loan, so the two may no longer agree."
)


@dataclass
class TransitionResult:
    """Outcome of a loan status change"""
    loan: Loan
    date_field: str
    generated_transaction: Optional[CashTransaction] = None


@dataclass
class LoanDeletion:
    """A deleted (or about to be deleted) loan and the ledger rows it leaves behind"""
    loan: Loan
    orphaned_transactions: List[CashTransaction] = field(default_factory=list)

    @property
    def warning(self) -> Optional[str]:
        if not self.orphaned_transactions:
            return None
        return LOAN_DELETE_WARNING.format(count=len(self.orphaned_transactions))


@dataclass
class TransactionDeletion:
    """A deleted ledger row"""
    transaction: CashTransaction

    @property
    def warning(self) -> Optional[str]:
        if not self.transaction.is_loan_linked:
            return None
        return TRANSACTION_DELETE_WARNING.format(loan_id=self.transaction.related_loan_id)


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field_name, f"{field_name} must not be empty")
    return str(value).strip()


def _require_amount(value: Any, field_name: str = "amount") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(field_name, f"{field_name} must be a positive whole number")
    return value


def _require_date(value: Any, field_name: str) -> date:
    if not isinstance(value, date):
        raise ValidationError(field_name, f"{field_name} is required")
    return value


class LendingStore:
    """
    In-memory store for loans and the cash ledger
    """

    LOANS_TABLE = "loans"
    TRANSACTIONS_TABLE = "cash_transactions"

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        dispatcher: Optional[EventDispatcher] = None,
        strict_transitions: bool = True,
        id_generator: Optional[TimeBasedIdGenerator] = None
    ):
        self.storage = storage or InMemoryStorage()
        self.dispatcher = dispatcher or EventDispatcher()
        self.strict_transitions = strict_transitions
        self.id_generator = id_generator or TimeBasedIdGenerator()
        self.ledger_sync = LedgerSynchronizer(self.id_generator)
        self.logger = logging.getLogger("rt_lending.store")
        self._lock = threading.RLock()

    # Internal helpers

    def _publish(self, action: ChangeAction, entity_id: str, payload: Dict[str, Any]) -> None:
        self.dispatcher.publish(ChangeEvent(action=action, entity_id=entity_id, payload=payload))

    def _log(self, actor: Actor, action: str, resource: str, message: str,
             extra: Optional[dict] = None) -> None:
        log_action(self.logger, "info", message, actor=actor.label,
                   action=action, resource=resource, extra=extra)

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.LOANS_TABLE, loan.id, loan.to_dict())

    def _save_transaction(self, transaction: CashTransaction) -> None:
        self.storage.save(self.TRANSACTIONS_TABLE, transaction.id, transaction.to_dict())

    def _all_loans(self) -> List[Loan]:
        return [Loan.from_dict(data) for data in self.storage.load_all(self.LOANS_TABLE)]

    def _all_transactions(self) -> List[CashTransaction]:
        return [CashTransaction.from_dict(data)
                for data in self.storage.load_all(self.TRANSACTIONS_TABLE)]

    # Loans

    def get_loan(self, loan_id: str) -> Loan:
        """Load a loan or raise LoanNotFoundError"""
        with self._lock:
            data = self.storage.load(self.LOANS_TABLE, loan_id)
        if data is None:
            raise LoanNotFoundError(loan_id)
        return Loan.from_dict(data)

    def list_loans(self, actor: Optional[Actor] = None) -> List[Loan]:
        """Loans newest submission first; restricted to what the actor may see"""
        with self._lock:
            loans = self._all_loans()
        if actor is not None:
            loans = [loan for loan in loans if actor.can_view_loan(loan)]
        return sorted(loans, key=lambda l: (l.submission_date, l.id), reverse=True)

    def create_loan(self, actor: Actor, borrower_name: str, amount: int,
                    submission_date: date) -> Loan:
        """
        Register a new loan request in PENDING status

        Args:
            actor: Acting user (needs CREATE_LOAN)
            borrower_name: Borrower's name
            amount: Principal in whole rupiah
            submission_date: Date the request was made

        Returns:
            The created Loan
        """
        actor.require(Permission.CREATE_LOAN)
        loan = Loan(
            id=self.id_generator.next_id(),
            borrower_name=_require_text(borrower_name, "borrower_name"),
            amount=_require_amount(amount),
            submission_date=_require_date(submission_date, "submission_date"),
        )

        with self._lock:
            self._save_loan(loan)

        self._log(actor, "create_loan", f"loan:{loan.id}",
                  f"Loan {loan.id} created for {loan.borrower_name}",
                  {"amount": loan.amount})
        self._publish(ChangeAction.CREATE_LOAN, loan.id, loan.to_wire())
        return loan

    def edit_loan(self, actor: Actor, loan_id: str, borrower_name: Optional[str] = None,
                  amount: Optional[int] = None, submission_date: Optional[date] = None) -> Loan:
        """Correct a loan's name, principal or submission date.

        Lifecycle fields are not editable here, and ledger rows already
        generated for the loan keep their amounts.
        """
        actor.require(Permission.EDIT_LOAN)
        changes: Dict[str, Any] = {}

        with self._lock:
            loan = self.get_loan(loan_id)
            if borrower_name is not None:
                loan.borrower_name = _require_text(borrower_name, "borrower_name")
                changes['borrowerName'] = loan.borrower_name
            if amount is not None:
                loan.amount = _require_amount(amount)
                changes['amount'] = loan.amount
            if submission_date is not None:
                loan.submission_date = _require_date(submission_date, "submission_date")
                changes['date'] = loan.submission_date.isoformat()
            if not changes:
                return loan
            self._save_loan(loan)

        self._log(actor, "edit_loan", f"loan:{loan.id}",
                  f"Loan {loan.id} edited", {"fields": sorted(changes)})
        self._publish(ChangeAction.UPDATE_LOAN, loan.id, {'id': loan.id, **changes})
        return loan

    def deletion_warning(self, loan_id: str) -> LoanDeletion:
        """Preview what deleting a loan would leave behind in the ledger"""
        with self._lock:
            loan = self.get_loan(loan_id)
            return LoanDeletion(loan, linked_transactions(self._all_transactions(), loan_id))

    def delete_loan(self, actor: Actor, loan_id: str) -> LoanDeletion:
        """Delete a loan at any stage. Linked ledger rows are left in place."""
        actor.require(Permission.DELETE_LOAN)
        with self._lock:
            deletion = self.deletion_warning(loan_id)
            self.storage.delete(self.LOANS_TABLE, loan_id)

        if deletion.warning:
            self.logger.warning(
                f"Loan {loan_id} deleted with {len(deletion.orphaned_transactions)} orphaned ledger rows"
            )
        self._log(actor, "delete_loan", f"loan:{loan_id}", f"Loan {loan_id} deleted")
        self._publish(ChangeAction.DELETE_LOAN, loan_id, {'id': loan_id})
        return deletion

    def transition(self, actor: Actor, loan_id: str, new_status: LoanStatus,
                   effective_date: date) -> TransitionResult:
        """
        Move a loan to its next status and write the ledger row it owes

        Args:
            actor: Acting user; the permission depends on the target status
            loan_id: Loan to move
            new_status: Target status
            effective_date: Date the stage took effect (may be backdated)

        Returns:
            TransitionResult with the updated loan and any generated row

        Raises:
            IllegalTransitionError: if the lifecycle does not allow the move
            PermissionDeniedError: if the actor may not make this move
        """
        new_status = LoanStatus.parse(new_status)
        permission = TRANSITION_PERMISSIONS.get(new_status)
        if permission is not None:
            actor.require(permission)
        _require_date(effective_date, "effective_date")

        with self._lock:
            loan = self.get_loan(loan_id)
            date_field = apply_transition(loan, new_status, effective_date,
                                          strict=self.strict_transitions)
            self._save_loan(loan)

            generated = self.ledger_sync.entry_for(
                loan, new_status, effective_date, self._all_transactions()
            )
            if generated is not None:
                self._save_transaction(generated)

        self._log(actor, "transition", f"loan:{loan.id}",
                  f"Loan {loan.id} moved to {new_status.name}",
                  {"date": effective_date.isoformat(),
                   "generated_transaction": generated.id if generated else None})
        self._publish(ChangeAction.UPDATE_LOAN, loan.id, {
            'id': loan.id,
            'status': loan.status.value,
            WIRE_DATE_FIELDS[date_field]: effective_date.isoformat(),
        })
        if generated is not None:
            self._publish(ChangeAction.CREATE_TRANSACTION, generated.id, generated.to_wire())

        return TransitionResult(loan=loan, date_field=date_field,
                                generated_transaction=generated)

    # Cash ledger

    def get_transaction(self, transaction_id: str) -> CashTransaction:
        """Load a ledger row or raise TransactionNotFoundError"""
        with self._lock:
            data = self.storage.load(self.TRANSACTIONS_TABLE, transaction_id)
        if data is None:
            raise TransactionNotFoundError(transaction_id)
        return CashTransaction.from_dict(data)

    def list_transactions(self) -> List[CashTransaction]:
        """Ledger rows, newest first"""
        with self._lock:
            transactions = self._all_transactions()
        return sorted(transactions, key=lambda t: (t.date, t.id), reverse=True)

    def add_transaction(
        self,
        actor: Actor,
        transaction_date: date,
        description: str,
        amount: int,
        transaction_type: TransactionType,
        category: TransactionCategory = TransactionCategory.MANUAL,
        related_loan_id: Optional[str] = None
    ) -> CashTransaction:
        """Record a ledger row by hand"""
        actor.require(Permission.MANAGE_CASHFLOW)

        with self._lock:
            if category.is_loan_linked and related_loan_id and find_linked(
                    self._all_transactions(), related_loan_id, category) is not None:
                raise ValidationError(
                    "category",
                    f"Loan {related_loan_id} already has a {category.value} transaction"
                )
            transaction = CashTransaction(
                id=self.id_generator.next_id(),
                date=_require_date(transaction_date, "date"),
                description=_require_text(description, "description"),
                amount=_require_amount(amount),
                type=transaction_type,
                category=category,
                related_loan_id=related_loan_id,
            )
            self._save_transaction(transaction)

        self._log(actor, "add_transaction", f"transaction:{transaction.id}",
                  f"{transaction.type.value} {transaction.amount} recorded",
                  {"category": transaction.category.value})
        self._publish(ChangeAction.CREATE_TRANSACTION, transaction.id, transaction.to_wire())
        return transaction

    def edit_transaction(self, actor: Actor, transaction_id: str,
                         description: Optional[str] = None, amount: Optional[int] = None,
                         transaction_date: Optional[date] = None) -> CashTransaction:
        """Correct a ledger row's description, amount or date"""
        actor.require(Permission.MANAGE_CASHFLOW)
        changes: Dict[str, Any] = {}

        with self._lock:
            transaction = self.get_transaction(transaction_id)
            if description is not None:
                transaction.description = _require_text(description, "description")
                changes['description'] = transaction.description
            if amount is not None:
                transaction.amount = _require_amount(amount)
                changes['amount'] = transaction.amount
            if transaction_date is not None:
                transaction.date = _require_date(transaction_date, "date")
                changes['date'] = transaction.date.isoformat()
            if not changes:
                return transaction
            self._save_transaction(transaction)

        self._log(actor, "edit_transaction", f"transaction:{transaction.id}",
                  f"Transaction {transaction.id} edited", {"fields": sorted(changes)})
        self._publish(ChangeAction.UPDATE_TRANSACTION, transaction.id,
                      {'id': transaction.id, **changes})
        return transaction

    def delete_transaction(self, actor: Actor, transaction_id: str) -> TransactionDeletion:
        """Delete a ledger row; the opening balance can only be edited"""
        actor.require(Permission.MANAGE_CASHFLOW)

        with self._lock:
            transaction = self.get_transaction(transaction_id)
            if transaction.category == TransactionCategory.INITIAL_BALANCE:
                raise ValidationError("category", "The initial balance can be edited but not deleted")
            self.storage.delete(self.TRANSACTIONS_TABLE, transaction_id)

        deletion = TransactionDeletion(transaction)
        if deletion.warning:
            self.logger.warning(
                f"Loan-linked transaction {transaction_id} deleted; loan {transaction.related_loan_id} unchanged"
            )
        self._log(actor, "delete_transaction", f"transaction:{transaction_id}",
                  f"Transaction {transaction_id} deleted")
        self._publish(ChangeAction.DELETE_TRANSACTION, transaction_id, {'id': transaction_id})
        return deletion

    def set_initial_balance(self, actor: Actor, amount: int, balance_date: date) -> CashTransaction:
        """Edit the opening-balance row, creating it the first time"""
        actor.require(Permission.MANAGE_CASHFLOW)
        with self._lock:
            existing = find_opening_balance(self._all_transactions())
            if existing is not None:
                return self.edit_transaction(actor, existing.id, amount=amount,
                                             transaction_date=balance_date)
            return self.add_transaction(
                actor, balance_date, INITIAL_BALANCE_DESCRIPTION, amount,
                TransactionType.INCOME, TransactionCategory.INITIAL_BALANCE
            )

    # Derived views

    def ledger_summary(self) -> LedgerSummary:
        with self._lock:
            return summarize_ledger(self._all_transactions())

    def portfolio_summary(self) -> PortfolioSummary:
        with self._lock:
            return portfolio_summary(self._all_loans())

    # Bulk replacement

    def replace_all(self, loans: Optional[List[Loan]] = None,
                    transactions: Optional[List[CashTransaction]] = None) -> None:
        """Swap in whole collections without emitting change events.

        A None collection keeps the current local data.
        """
        with self._lock:
            if loans is not None:
                self.storage.replace_table(self.LOANS_TABLE, [l.to_dict() for l in loans])
            if transactions is not None:
                self.storage.replace_table(self.TRANSACTIONS_TABLE,
                                           [t.to_dict() for t in transactions])

    def apply_remote_snapshot(self, snapshot: RemoteSnapshot) -> Tuple[Optional[int], Optional[int]]:
        """
        Replace local data with a bulk load from the spreadsheet service

        Malformed records are skipped with a warning. An absent collection
        leaves the local one untouched.

        Returns:
            (loans loaded, transactions loaded); None for a collection kept local
        """
        loans = None
        if snapshot.loans is not None:
            loans = self._decode(snapshot.loans, Loan.from_wire, "loan")
            for loan in loans:
                if not loan.is_consistent():
                    self.logger.warning(
                        f"Remote loan {loan.id} has status {loan.status.name} "
                        f"but dates imply {loan.derived_status().name}"
                    )

        transactions = None
        if snapshot.transactions is not None:
            transactions = self._decode(snapshot.transactions, CashTransaction.from_wire, "transaction")

        self.replace_all(loans, transactions)
        self.logger.info(
            f"Remote snapshot applied: loans={len(loans) if loans is not None else 'kept'} "
            f"transactions={len(transactions) if transactions is not None else 'kept'}"
        )
        return (len(loans) if loans is not None else None,
                len(transactions) if transactions is not None else None)

    def _decode(self, records: List[Dict[str, Any]], parse, kind: str) -> list:
        decoded = []
        for record in records:
            try:
                decoded.append(parse(record))
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(f"Skipping malformed remote {kind} {record.get('id')!r}: {e}")
        return decoded


def find_opening_balance(transactions: List[CashTransaction]) -> Optional[CashTransaction]:
    for transaction in transactions:
        if transaction.category == TransactionCategory.INITIAL_BALANCE:
            return transaction
    return None

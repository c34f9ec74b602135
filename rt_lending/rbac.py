"""
Role-Based Access Module

Roles and permissions for the three kinds of actor: the administrator who
keeps the books, the RT head who approves loans and confirms repayment,
and borrowers who may only look at their own loans.

No authentication happens here. An Actor is a capability token handed to
every mutating store operation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Mapping

from .exceptions import PermissionDeniedError
from .loans import Loan, LoanStatus


class Role(Enum):
    """Actor classifications"""
    ADMIN = "ADMIN"
    RT = "RT"              # approver
    NASABAH = "NASABAH"    # borrower


class Permission(Enum):
    """System permissions"""
    # Loan permissions
    CREATE_LOAN = "create_loan"
    EDIT_LOAN = "edit_loan"
    DELETE_LOAN = "delete_loan"
    DECIDE_LOAN = "decide_loan"            # approve or reject
    RECORD_PAYMENT = "record_payment"      # admin received the money
    CONFIRM_PAID = "confirm_paid"          # RT validates the payment
    VIEW_ALL_LOANS = "view_all_loans"
    VIEW_OWN_LOANS = "view_own_loans"

    # Cash flow permissions
    MANAGE_CASHFLOW = "manage_cashflow"
    VIEW_CASHFLOW = "view_cashflow"


ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset({
        Permission.CREATE_LOAN,
        Permission.EDIT_LOAN,
        Permission.DELETE_LOAN,
        Permission.RECORD_PAYMENT,
        Permission.VIEW_ALL_LOANS,
        Permission.MANAGE_CASHFLOW,
        Permission.VIEW_CASHFLOW,
    }),
    Role.RT: frozenset({
        Permission.DECIDE_LOAN,
        Permission.CONFIRM_PAID,
        Permission.VIEW_ALL_LOANS,
        Permission.VIEW_CASHFLOW,
    }),
    Role.NASABAH: frozenset({
        Permission.VIEW_OWN_LOANS,
    }),
}

# Permission needed to move a loan into each status
TRANSITION_PERMISSIONS: Mapping[LoanStatus, Permission] = {
    LoanStatus.APPROVED: Permission.DECIDE_LOAN,
    LoanStatus.REJECTED: Permission.DECIDE_LOAN,
    LoanStatus.PAYMENT_VERIFYING: Permission.RECORD_PAYMENT,
    LoanStatus.PAID: Permission.CONFIRM_PAID,
}


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation"""
    role: Role
    name: str = ""

    @classmethod
    def admin(cls) -> 'Actor':
        return cls(Role.ADMIN, "Administrator")

    @classmethod
    def rt(cls) -> 'Actor':
        return cls(Role.RT, "Ketua RT")

    @classmethod
    def borrower(cls, name: str) -> 'Actor':
        return cls(Role.NASABAH, name)

    @property
    def label(self) -> str:
        return f"{self.role.value}:{self.name}" if self.name else self.role.value

    def has_permission(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS[self.role]

    def require(self, permission: Permission) -> None:
        """Raise PermissionDeniedError unless the role holds the permission"""
        if not self.has_permission(permission):
            raise PermissionDeniedError(self.role, permission)

    def can_view_loan(self, loan: Loan) -> bool:
        if self.has_permission(Permission.VIEW_ALL_LOANS):
            return True
        return (self.has_permission(Permission.VIEW_OWN_LOANS)
                and loan.borrower_name.strip().lower() == self.name.strip().lower())

"""
RT Lending API Application Factory

Thin HTTP surface over LendingStore. Who is calling comes from the
X-Role / X-User-Name headers; nothing is authenticated.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import __version__
from .cashflow import CashTransaction, TransactionCategory, TransactionType, parse_date
from .config import LendingConfig, get_config
from .currency import Currency, currency_for_code, format_amount
from .events import EventDispatcher
from .exceptions import (
    IllegalTransitionError, LendingError, PermissionDeniedError,
    RecordNotFoundError, ValidationError
)
from .ledger_sync import repayment_breakdown
from .logging_config import setup_logging
from .loans import Loan, LoanStatus
from .outbox import BootstrapLoader, SyncOutbox
from .rbac import Actor, Permission, Role
from .reporting import (
    available_years, filter_loans, filter_transactions, loan_timeline, loans_for_borrower
)
from .seed import seed_store
from .store import LendingStore
from .sync_client import SheetSyncClient


# Request schemas

class CreateLoanRequest(BaseModel):
    borrower_name: str
    amount: int = Field(..., description="Principal in whole rupiah")
    submission_date: str  # ISO date string


class UpdateLoanRequest(BaseModel):
    borrower_name: Optional[str] = None
    amount: Optional[int] = None
    submission_date: Optional[str] = None


class TransitionRequest(BaseModel):
    status: str = Field(..., description="Target status name or label")
    effective_date: str


class CreateTransactionRequest(BaseModel):
    transaction_date: str
    description: str
    amount: int
    type: str = Field(..., description="INCOME or EXPENSE")
    category: str = "MANUAL"
    related_loan_id: Optional[str] = None


class UpdateTransactionRequest(BaseModel):
    transaction_date: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[int] = None


class InitialBalanceRequest(BaseModel):
    amount: int
    balance_date: str


# Dependencies and helpers

def get_store(request: Request) -> LendingStore:
    return request.app.state.store


def get_actor(
    x_role: str = Header("NASABAH"),
    x_user_name: str = Header("")
) -> Actor:
    """Actor from request headers; borrowers must give a name"""
    try:
        role = Role[x_role.strip().upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {x_role}")
    if role == Role.NASABAH and not x_user_name.strip():
        raise HTTPException(status_code=400, detail="X-User-Name is required for borrowers")
    return Actor(role, x_user_name.strip())


def http_error(error: LendingError) -> HTTPException:
    """Map a domain error to its HTTP status"""
    if isinstance(error, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, RecordNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, IllegalTransitionError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, PermissionDeniedError):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail={"message": error.message, **error.details})


def _optional_date(value: Optional[str], field_name: str):
    return parse_date(value, field_name) if value is not None else None


def _enum_member(enum_cls, value: Optional[str], field_name: str):
    if value is None:
        return None
    try:
        return enum_cls[value.strip().upper()]
    except KeyError:
        raise ValidationError(field_name, f"Unknown {field_name}: {value!r}")


def loan_body(loan: Loan) -> Dict[str, Any]:
    body = loan.to_wire()
    body['interest'] = loan.interest
    body['totalDue'] = loan.total_due
    return body


def transaction_body(transaction: CashTransaction) -> Dict[str, Any]:
    return transaction.to_wire()


# Loans

loans_router = APIRouter()


@loans_router.get("")
async def list_loans(
    status_filter: Optional[str] = Query(None, alias="status"),
    year: Optional[int] = None,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """List loans visible to the caller"""
    try:
        loan_status = LoanStatus.parse(status_filter) if status_filter else None
        loans = filter_loans(store.list_loans(actor), status=loan_status, year=year)
    except LendingError as e:
        raise http_error(e)
    return {"loans": [loan_body(l) for l in loans], "count": len(loans)}


@loans_router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Register a new loan request"""
    try:
        loan = store.create_loan(
            actor,
            borrower_name=request.borrower_name,
            amount=request.amount,
            submission_date=parse_date(request.submission_date, "submission_date")
        )
    except LendingError as e:
        raise http_error(e)
    return loan_body(loan)


@loans_router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Get loan details"""
    try:
        loan = store.get_loan(loan_id)
        if not actor.can_view_loan(loan):
            raise PermissionDeniedError(actor.role, Permission.VIEW_ALL_LOANS)
    except LendingError as e:
        raise http_error(e)
    return loan_body(loan)


@loans_router.patch("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Edit borrower name, principal or submission date"""
    try:
        loan = store.edit_loan(
            actor, loan_id,
            borrower_name=request.borrower_name,
            amount=request.amount,
            submission_date=_optional_date(request.submission_date, "submission_date")
        )
    except LendingError as e:
        raise http_error(e)
    return loan_body(loan)


@loans_router.get("/{loan_id}/deletion-warning")
async def get_deletion_warning(
    loan_id: str,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """What deleting this loan would leave in the cash ledger"""
    try:
        actor.require(Permission.DELETE_LOAN)
        preview = store.deletion_warning(loan_id)
    except LendingError as e:
        raise http_error(e)
    return {
        "warning": preview.warning,
        "linked_transactions": [transaction_body(t) for t in preview.orphaned_transactions]
    }


@loans_router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Delete a loan; its ledger rows stay"""
    try:
        deletion = store.delete_loan(actor, loan_id)
    except LendingError as e:
        raise http_error(e)
    return {
        "deleted": loan_id,
        "warning": deletion.warning,
        "orphaned_transactions": [transaction_body(t) for t in deletion.orphaned_transactions]
    }


@loans_router.post("/{loan_id}/transition")
async def transition_loan(
    loan_id: str,
    request: TransitionRequest,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Move a loan to its next stage"""
    try:
        result = store.transition(
            actor, loan_id,
            LoanStatus.parse(request.status),
            parse_date(request.effective_date, "effective_date")
        )
    except LendingError as e:
        raise http_error(e)
    generated = result.generated_transaction
    return {
        "loan": loan_body(result.loan),
        "generated_transaction": transaction_body(generated) if generated else None
    }


@loans_router.get("/{loan_id}/timeline")
async def get_loan_timeline(
    loan_id: str,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Stage-by-stage progress of a loan"""
    try:
        loan = store.get_loan(loan_id)
        if not actor.can_view_loan(loan):
            raise PermissionDeniedError(actor.role, Permission.VIEW_ALL_LOANS)
    except LendingError as e:
        raise http_error(e)
    return {"loan_id": loan.id, "steps": [step.to_dict() for step in loan_timeline(loan)]}


# Cash ledger

transactions_router = APIRouter()


@transactions_router.get("")
async def list_transactions(
    type_filter: Optional[str] = Query(None, alias="type"),
    year: Optional[int] = None,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """List ledger rows, newest first"""
    try:
        actor.require(Permission.VIEW_CASHFLOW)
        transaction_type = _enum_member(TransactionType, type_filter, "type")
        rows = filter_transactions(store.list_transactions(), transaction_type, year)
    except LendingError as e:
        raise http_error(e)
    return {"transactions": [transaction_body(t) for t in rows], "count": len(rows)}


@transactions_router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    request: CreateTransactionRequest,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Record a ledger row by hand"""
    try:
        transaction = store.add_transaction(
            actor,
            parse_date(request.transaction_date, "transaction_date"),
            request.description,
            request.amount,
            _enum_member(TransactionType, request.type, "type"),
            _enum_member(TransactionCategory, request.category, "category"),
            request.related_loan_id
        )
    except LendingError as e:
        raise http_error(e)
    return transaction_body(transaction)


@transactions_router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Get one ledger row"""
    try:
        actor.require(Permission.VIEW_CASHFLOW)
        transaction = store.get_transaction(transaction_id)
    except LendingError as e:
        raise http_error(e)
    return transaction_body(transaction)


@transactions_router.patch("/{transaction_id}")
async def update_transaction(
    transaction_id: str,
    request: UpdateTransactionRequest,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Edit a ledger row"""
    try:
        transaction = store.edit_transaction(
            actor, transaction_id,
            description=request.description,
            amount=request.amount,
            transaction_date=_optional_date(request.transaction_date, "transaction_date")
        )
    except LendingError as e:
        raise http_error(e)
    return transaction_body(transaction)


@transactions_router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Delete a ledger row"""
    try:
        deletion = store.delete_transaction(actor, transaction_id)
    except LendingError as e:
        raise http_error(e)
    return {"deleted": transaction_id, "warning": deletion.warning}


# Reports

reports_router = APIRouter()


@reports_router.get("/ledger")
async def get_ledger_report(
    request: Request,
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Cash-flow totals, raw and formatted for display"""
    try:
        actor.require(Permission.VIEW_CASHFLOW)
    except LendingError as e:
        raise http_error(e)
    summary = store.ledger_summary().to_dict()
    currency = request.app.state.currency
    summary["formatted"] = {
        key: format_amount(value, currency)
        for key, value in summary.items() if key != "inexact_repayments"
    }
    return summary


@reports_router.get("/portfolio")
async def get_portfolio_report(
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Loan book totals"""
    try:
        actor.require(Permission.VIEW_ALL_LOANS)
    except LendingError as e:
        raise http_error(e)
    return store.portfolio_summary().to_dict()


@reports_router.get("/repayments")
async def get_repayment_report(
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Principal/interest split of every repayment row"""
    try:
        actor.require(Permission.VIEW_CASHFLOW)
    except LendingError as e:
        raise http_error(e)
    rows = repayment_breakdown(store.list_transactions())
    return {"repayments": [r.to_dict() for r in rows], "count": len(rows)}


@reports_router.get("/years")
async def get_available_years(
    store: LendingStore = Depends(get_store),
    actor: Actor = Depends(get_actor)
):
    """Years present in the loans the caller can see and in the ledger"""
    transactions = store.list_transactions() if actor.has_permission(Permission.VIEW_CASHFLOW) else []
    return {"years": available_years(store.list_loans(actor), transactions)}


def create_app(store: Optional[LendingStore] = None, currency: Currency = Currency.IDR,
               lifespan=None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="RT Lending API",
        description="Community loan book and cash ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.store = store or LendingStore()
    app.state.currency = currency

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "rt_lending_api",
            "version": __version__,
            "currency": app.state.currency.code
        }

    @app.put("/initial-balance")
    async def set_initial_balance(
        request: InitialBalanceRequest,
        store: LendingStore = Depends(get_store),
        actor: Actor = Depends(get_actor)
    ):
        """Set the opening cash balance"""
        try:
            transaction = store.set_initial_balance(
                actor, request.amount, parse_date(request.balance_date, "balance_date")
            )
        except LendingError as e:
            raise http_error(e)
        return transaction_body(transaction)

    @app.get("/borrowers/{borrower_name}/loans")
    async def get_borrower_loans(
        borrower_name: str,
        store: LendingStore = Depends(get_store),
        actor: Actor = Depends(get_actor)
    ):
        """Loans of one borrower, with their progress"""
        loans = loans_for_borrower(store.list_loans(actor), borrower_name)
        return {
            "borrower": borrower_name,
            "loans": [
                {**loan_body(l), "timeline": [s.to_dict() for s in loan_timeline(l)]}
                for l in loans
            ]
        }

    return app


def create_application(cfg: Optional[LendingConfig] = None) -> FastAPI:
    """
    Build the fully wired application from configuration

    The store starts from the bootstrap data (if enabled) so the API is
    usable at once; the remote bulk load, when configured, runs in the
    background and swaps its data in when it arrives.
    """
    cfg = cfg or get_config()

    dispatcher = EventDispatcher()
    store = LendingStore(dispatcher=dispatcher, strict_transitions=cfg.strict_transitions)
    if cfg.seed_demo_data:
        seed_store(store)

    client = SheetSyncClient(
        base_url=cfg.sync_url,
        timeout=cfg.sync_timeout,
        api_key=cfg.sync_api_key if cfg.sync_api_key else None,
        enabled=cfg.sync_enabled
    )
    # Without a sync URL nothing is queued
    outbox = SyncOutbox(client, dispatcher if cfg.sync_enabled else None,
                        maxsize=cfg.sync_queue_size)
    loader = BootstrapLoader(client, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if cfg.sync_enabled:
            outbox.start()
            if cfg.bootstrap_remote_load:
                loader.start()
        yield
        outbox.close()
        client.close()

    app = create_app(store, currency=currency_for_code(cfg.currency_code), lifespan=lifespan)
    app.state.outbox = outbox
    app.state.loader = loader
    return app


def run_server(cfg: Optional[LendingConfig] = None):
    """Run the FastAPI server"""
    cfg = cfg or get_config()
    setup_logging(cfg.log_level, cfg.log_format)
    uvicorn.run(
        create_application(cfg),
        host=cfg.api_host,
        port=cfg.api_port,
        log_level=cfg.log_level.lower()
    )

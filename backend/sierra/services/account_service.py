# Overview: Service-layer operations for company accounts; balance changes always write a ledger row.

"""
Account/Balance Bookkeeping Service

WHY: Cash and bank balances are touched by customer payments, cleared
cheques, supplier payments, expenses, deposits and transfers. Every one
of those goes through apply_balance_change so the stored balance and the
AccountTransaction ledger can never disagree.

DESIGN PRINCIPLES:
- Callers lock the account row (lock_for_update) before changing it
- One AccountTransaction per balance change, signed amount, balance_after
- Transfers lock both rows in id order and never overdraw the source
- Supplier payments and expenses may overdraw (allow_overdraft=True)
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import AccountTransaction, Bank, CompanyAccount
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    parse_choice,
    parse_int,
    parse_money,
    parse_text,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


ACCOUNT_TYPES = {"cash", "bank"}
TRANSACTION_KINDS = {"deposit", "transfer"}

ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={"account_name", "account_type", "bank_id", "account_number", "initial_balance_cents", "is_active"},
    required_on_create={"account_name", "account_type"},
)

ACCOUNT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"account_name", "bank_id", "account_number", "is_active"},
)

BANK_POLICY = ModelValidationPolicy(
    writable_fields={"bank_code", "bank_name"},
    required_on_create={"bank_code", "bank_name"},
)


class AccountError(ValidationError):
    """Raised for account operation errors (400)."""
    pass


# =============================================================================
# LEDGER PRIMITIVES
# =============================================================================

def get_account_for_update(account_id: int) -> CompanyAccount:
    """Load and lock a company account, or raise NotFoundError."""
    account = lock_for_update(
        db.session.query(CompanyAccount).filter_by(id=account_id)
    ).first()
    if not account:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def apply_balance_change(
    account: CompanyAccount,
    amount_cents: int,
    *,
    transaction_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    allow_overdraft: bool = True,
) -> AccountTransaction:
    """
    Move a locked account's balance by a signed amount and log it.

    Does not commit; the caller owns the transaction.
    """
    if amount_cents == 0:
        raise AccountError("Balance change must be non-zero")

    new_balance = account.current_balance_cents + amount_cents
    if new_balance < 0 and not allow_overdraft:
        raise AccountError(
            f"Insufficient balance in {account.account_name}: "
            f"available {account.current_balance_cents}, required {-amount_cents}"
        )

    account.current_balance_cents = new_balance

    txn = AccountTransaction(
        account_id=account.id,
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        balance_after_cents=new_balance,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by_user_id=user_id,
    )
    db.session.add(txn)
    return txn


# =============================================================================
# DEPOSITS AND TRANSFERS
# =============================================================================

def deposit(*, to_account_id: int, amount_cents: int, user_id: int | None, notes: str | None = None) -> dict:
    """Add funds to an account."""
    def _op():
        account = get_account_for_update(to_account_id)
        if not account.is_active:
            raise AccountError("Account is inactive")

        apply_balance_change(
            account,
            amount_cents,
            transaction_type="deposit",
            notes=notes,
            user_id=user_id,
        )
        db.session.commit()
        logger.info("Deposit of %s into account %s", amount_cents, account.id)
        return {"to_account": account.to_dict()}

    return run_with_retry(_op)


def transfer(
    *,
    from_account_id: int,
    to_account_id: int,
    amount_cents: int,
    user_id: int | None,
    notes: str | None = None,
) -> dict:
    """
    Move funds between two accounts atomically.

    The sum of both balances is unchanged. Rejected if the accounts are
    the same or the source cannot cover the amount.
    """
    if from_account_id == to_account_id:
        raise AccountError("Source and destination accounts must be different")

    def _op():
        # Lock in id order so two opposite transfers cannot deadlock
        locked = {}
        for account_id in sorted((from_account_id, to_account_id)):
            locked[account_id] = get_account_for_update(account_id)
        source = locked[from_account_id]
        destination = locked[to_account_id]

        if not source.is_active or not destination.is_active:
            raise AccountError("Both accounts must be active")

        if source.current_balance_cents < amount_cents:
            raise AccountError(
                f"Insufficient balance in {source.account_name}: "
                f"available {source.current_balance_cents}, required {amount_cents}"
            )

        apply_balance_change(
            source,
            -amount_cents,
            transaction_type="transfer_out",
            reference_type="account",
            reference_id=destination.id,
            notes=notes,
            user_id=user_id,
            allow_overdraft=False,
        )
        apply_balance_change(
            destination,
            amount_cents,
            transaction_type="transfer_in",
            reference_type="account",
            reference_id=source.id,
            notes=notes,
            user_id=user_id,
        )
        db.session.commit()
        logger.info(
            "Transfer of %s from account %s to account %s",
            amount_cents, source.id, destination.id,
        )
        return {"from_account": source.to_dict(), "to_account": destination.to_dict()}

    return run_with_retry(_op)


def record_transaction(payload: dict, *, user_id: int | None) -> dict:
    """
    Dispatch POST /api/accounts/transaction.

    {type: "deposit", amount_cents, to_account_id}
    {type: "transfer", amount_cents, from_account_id, to_account_id}
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    kind = parse_choice("type", payload.get("type"), TRANSACTION_KINDS)
    amount = parse_money("amount_cents", payload.get("amount_cents"), positive=True)
    to_account_id = parse_int("to_account_id", payload.get("to_account_id"))
    notes = parse_text("notes", payload.get("notes"), max_length=255)

    if kind == "deposit":
        return deposit(to_account_id=to_account_id, amount_cents=amount, user_id=user_id, notes=notes)

    from_account_id = parse_int("from_account_id", payload.get("from_account_id"))
    return transfer(
        from_account_id=from_account_id,
        to_account_id=to_account_id,
        amount_cents=amount,
        user_id=user_id,
        notes=notes,
    )


# =============================================================================
# ACCOUNT MASTER DATA
# =============================================================================

def _check_account_number_free(account_number: str | None, *, exclude_id: int | None = None) -> None:
    if not account_number:
        return
    query = db.session.query(CompanyAccount).filter(CompanyAccount.account_number == account_number)
    if exclude_id is not None:
        query = query.filter(CompanyAccount.id != exclude_id)
    if query.first():
        raise ConflictError(f"Account number {account_number} already exists")


def _check_bank(bank_id: int | None) -> None:
    if bank_id is not None and not db.session.get(Bank, bank_id):
        raise NotFoundError(f"Bank {bank_id} not found")


def create_account(payload: dict) -> CompanyAccount:
    """
    Create a cash or bank account.

    Cash accounts carry no bank or account number. The opening balance is
    initial_balance_cents; the ledger starts empty.
    """
    patch = validate_payload(model=CompanyAccount, payload=payload, policy=ACCOUNT_POLICY, partial=False)

    if patch["account_type"] not in ACCOUNT_TYPES:
        raise ValidationError(f"account_type must be one of: {', '.join(sorted(ACCOUNT_TYPES))}")

    if patch["account_type"] == "cash":
        patch["bank_id"] = None
        patch["account_number"] = None
    else:
        if patch.get("bank_id") is None:
            raise ValidationError("bank_id is required for bank accounts")
        _check_bank(patch["bank_id"])
        _check_account_number_free(patch.get("account_number"))

    initial = patch.get("initial_balance_cents") or 0
    patch["initial_balance_cents"] = initial

    def _op():
        account = CompanyAccount(current_balance_cents=initial, **patch)
        db.session.add(account)
        db.session.commit()
        logger.info("Created %s account %s", account.account_type, account.account_name)
        return account

    return run_with_retry(_op)


def update_account(account_id: int, payload: dict) -> CompanyAccount:
    """Update account metadata. Balances only change through the ledger."""
    patch = validate_payload(model=CompanyAccount, payload=payload, policy=ACCOUNT_UPDATE_POLICY, partial=True)

    def _op():
        account = get_account_for_update(account_id)
        if account.account_type == "cash" and (patch.get("bank_id") or patch.get("account_number")):
            raise ValidationError("Cash accounts carry no bank or account number")
        if "bank_id" in patch:
            if patch["bank_id"] is None and account.account_type == "bank":
                raise ValidationError("bank_id is required for bank accounts")
            _check_bank(patch["bank_id"])
        if "account_number" in patch:
            _check_account_number_free(patch["account_number"], exclude_id=account.id)

        for key, value in patch.items():
            setattr(account, key, value)
        db.session.commit()
        return account

    return run_with_retry(_op)


def list_accounts(*, include_inactive: bool = False, account_type: str | None = None) -> list[CompanyAccount]:
    query = db.session.query(CompanyAccount)
    if not include_inactive:
        query = query.filter(CompanyAccount.is_active.is_(True))
    if account_type:
        query = query.filter(CompanyAccount.account_type == account_type)
    return query.order_by(CompanyAccount.account_type, CompanyAccount.account_name).all()


def get_account(account_id: int) -> CompanyAccount:
    account = db.session.get(CompanyAccount, account_id)
    if not account:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def get_account_ledger(account_id: int, *, limit: int = 200) -> dict:
    """
    Account ledger plus reconciliation.

    derived_balance_cents = initial_balance_cents + sum(ledger amounts);
    is_reconciled is False when the stored balance has drifted.
    """
    account = get_account(account_id)
    ledger_sum = (
        db.session.query(func.coalesce(func.sum(AccountTransaction.amount_cents), 0))
        .filter(AccountTransaction.account_id == account_id)
        .scalar()
    )
    derived = account.initial_balance_cents + int(ledger_sum)

    transactions = (
        db.session.query(AccountTransaction)
        .filter_by(account_id=account_id)
        .order_by(AccountTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "account": account.to_dict(),
        "transactions": [t.to_dict() for t in transactions],
        "derived_balance_cents": derived,
        "is_reconciled": derived == account.current_balance_cents,
    }


# =============================================================================
# BANKS
# =============================================================================

def list_banks() -> list[Bank]:
    return db.session.query(Bank).order_by(Bank.bank_name).all()


def create_bank(payload: dict) -> Bank:
    patch = validate_payload(model=Bank, payload=payload, policy=BANK_POLICY, partial=False)
    patch["bank_code"] = patch["bank_code"].upper()

    def _op():
        if db.session.query(Bank).filter_by(bank_code=patch["bank_code"]).first():
            raise ConflictError(f"Bank code {patch['bank_code']} already exists")
        bank = Bank(**patch)
        db.session.add(bank)
        db.session.commit()
        return bank

    return run_with_retry(_op)

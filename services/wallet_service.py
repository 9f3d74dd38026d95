# services/wallet_service.py
"""
Hospital wallet ledger.

The hospital document holds ``balance`` and ``ledger_seq``. Every balance
change bumps ``ledger_seq`` with a compare-and-swap and appends one
immutable row carrying the new sequence number and both balance snapshots,
so the rows of a hospital form a gapless chain.
"""
import logging
from decimal import Decimal
from typing import Callable, List, Optional
from database import HOSPITALS, ORDERS, WALLET_TRANSACTIONS, transaction
from errors import ConflictError, InsufficientFundsError, NotFoundError, ValidationError
from models.wallet import TransactionType, WalletTransactionResponse
from services.hospital_service import get_hospital
from utils import generate_transaction_id, get_current_datetime, to_decimal, to_decimal128

logger = logging.getLogger(__name__)

MAX_LEDGER_WRITE_ATTEMPTS = 5


async def _append_entry(db, hospital_id: str, tx_type: TransactionType,
                        compute_delta: Callable[[Decimal], Decimal],
                        description: Optional[str] = None,
                        order_id: Optional[str] = None,
                        session=None) -> Optional[WalletTransactionResponse]:
    """
    Apply ``compute_delta(balance_before)`` to the hospital balance and log it.
    Returns None when the delta is zero. Joins ``session`` when given,
    otherwise the balance update and the row insert get their own transaction.
    """
    if session is not None:
        return await _write_entry(db, hospital_id, tx_type, compute_delta, description, order_id, session)
    async with transaction(db) as own_session:
        return await _write_entry(db, hospital_id, tx_type, compute_delta, description, order_id, own_session)


async def _write_entry(db, hospital_id, tx_type, compute_delta, description, order_id, session):
    for attempt in range(1, MAX_LEDGER_WRITE_ATTEMPTS + 1):
        hospital = await db[HOSPITALS].find_one({"_id": hospital_id}, session=session)
        if not hospital:
            raise NotFoundError("Hospital", hospital_id)
        balance_before = to_decimal(hospital.get("balance", 0))
        seq = hospital.get("ledger_seq", 0)

        delta = compute_delta(balance_before)
        if delta == 0:
            return None
        balance_after = balance_before + delta
        if balance_after < 0:
            raise InsufficientFundsError(hospital_id, balance_before, -delta)

        now = get_current_datetime()
        result = await db[HOSPITALS].update_one(
            {"_id": hospital_id, "ledger_seq": seq},
            {"$set": {
                "balance": to_decimal128(balance_after),
                "ledger_seq": seq + 1,
                "updated_at": now
            }},
            session=session
        )
        if result.modified_count == 0:
            logger.warning(f"Balance of hospital {hospital_id} changed concurrently (attempt {attempt}), re-reading")
            continue

        entry = {
            "_id": generate_transaction_id(),
            "hospital_id": hospital_id,
            "type": tx_type.value,
            "amount": to_decimal128(abs(delta)),
            "description": description,
            "order_id": order_id,
            "balance_before": to_decimal128(balance_before),
            "balance_after": to_decimal128(balance_after),
            "sequence": seq + 1,
            "created_at": now
        }
        try:
            await db[WALLET_TRANSACTIONS].insert_one(entry, session=session)
        except Exception:
            if session is not None:
                raise
            logger.error(f"Ledger append failed for hospital {hospital_id}, reverting balance")
            await db[HOSPITALS].update_one(
                {"_id": hospital_id, "ledger_seq": seq + 1},
                {"$set": {"balance": to_decimal128(balance_before), "ledger_seq": seq}}
            )
            raise

        logger.info(
            f"{tx_type.value} of {abs(delta)} recorded for hospital {hospital_id} "
            f"(balance {balance_before} -> {balance_after})"
        )
        return WalletTransactionResponse.model_validate(entry)

    raise ConflictError(
        f"Balance of hospital {hospital_id} is being modified concurrently, try again",
        entity="Hospital", entity_id=hospital_id, field="balance"
    )


async def record_transaction(db, hospital_id: str, tx_type: TransactionType, amount,
                             description: Optional[str] = None,
                             order_id: Optional[str] = None,
                             session=None) -> WalletTransactionResponse:
    """Deposit into or withdraw from a hospital wallet."""
    amount = to_decimal(amount)
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than 0", entity="Hospital",
                              entity_id=hospital_id, field="amount")
    if tx_type not in (TransactionType.DEPOSIT, TransactionType.WITHDRAW):
        raise ValidationError("Balance adjustments must use the adjustment operations",
                              entity="Hospital", entity_id=hospital_id, field="type")

    if order_id:
        order = await db[ORDERS].find_one({"_id": order_id}, session=session)
        if not order:
            raise NotFoundError("Order", order_id)
        if order["hospital_id"] != hospital_id:
            raise ValidationError("Order does not belong to this hospital", entity="Order",
                                  entity_id=order_id, field="order_id")

    delta = amount if tx_type == TransactionType.DEPOSIT else -amount
    return await _append_entry(db, hospital_id, tx_type, lambda balance: delta,
                               description=description, order_id=order_id, session=session)


async def adjust_balance(db, hospital_id: str, delta, description: Optional[str] = None) -> WalletTransactionResponse:
    """Administrative correction by a signed amount."""
    delta = to_decimal(delta)
    if delta is None or delta == 0:
        raise ValidationError("Adjustment must be non-zero", entity="Hospital",
                              entity_id=hospital_id, field="delta")
    return await _append_entry(db, hospital_id, TransactionType.ADJUSTMENT, lambda balance: delta,
                               description=description or "Administrative adjustment")


async def set_balance(db, hospital_id: str, new_balance,
                      description: Optional[str] = None) -> Optional[WalletTransactionResponse]:
    """Administrative correction to an absolute balance; None if nothing changed."""
    new_balance = to_decimal(new_balance)
    if new_balance is None or new_balance < 0:
        raise ValidationError("Balance must be non-negative", entity="Hospital",
                              entity_id=hospital_id, field="balance")
    return await _append_entry(db, hospital_id, TransactionType.ADJUSTMENT,
                               lambda balance: new_balance - balance,
                               description=description or "Administrative balance set")


async def list_transactions(db, hospital_id: str,
                            tx_type: Optional[TransactionType] = None) -> List[WalletTransactionResponse]:
    await get_hospital(db, hospital_id)
    query = {"hospital_id": hospital_id}
    if tx_type:
        query["type"] = tx_type.value
    transactions = await db[WALLET_TRANSACTIONS].find(query) \
        .sort("sequence", -1) \
        .to_list(length=None)
    return [WalletTransactionResponse.model_validate(t) for t in transactions]


async def list_order_transactions(db, order_id: str) -> List[WalletTransactionResponse]:
    transactions = await db[WALLET_TRANSACTIONS].find({"order_id": order_id}) \
        .sort("created_at", -1) \
        .to_list(length=None)
    return [WalletTransactionResponse.model_validate(t) for t in transactions]

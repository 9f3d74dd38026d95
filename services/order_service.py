# services/order_service.py
"""
Order lifecycle.

An order freezes the cart items it was created from. Its status follows
ORDER_TRANSITIONS; COMPLETED and CANCELED are terminal. Costs are
``total_cost = products_cost + platform_fee + (delivery_fee or 0)``,
recomputed on every write. Marking an order paid for the first time is the
only place stock is consumed.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from pymongo import ReturnDocument
from database import HOSPITALS, ORDERS, transaction
from errors import ConflictError, NotFoundError, StateError, ValidationError
from models.orders import OrderResponse, OrderStatus, SalesHistoryResponse
from models.wallet import TransactionType
from services import cart_service, inventory_service, wallet_service
from services.hospital_service import get_delivery_address, require_owner
from utils import generate_order_id, get_current_datetime, round_money, to_decimal, to_decimal128

logger = logging.getLogger(__name__)

PLATFORM_FEE_RATE = Decimal("0.10")

TERMINAL_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELED}

ORDER_TRANSITIONS = {
    OrderStatus.CALCULATING_LOGISTICS: {OrderStatus.CONFIRMING_PAYMENT, OrderStatus.CANCELED},
    OrderStatus.CONFIRMING_PAYMENT: {OrderStatus.IN_TRANSIT, OrderStatus.CANCELED},
    OrderStatus.IN_TRANSIT: {OrderStatus.COMPLETED, OrderStatus.CANCELED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELED: set(),
}


def calculate_total_cost(products_cost, platform_fee, delivery_fee=None) -> Decimal:
    delivery = to_decimal(delivery_fee) if delivery_fee is not None else Decimal("0")
    return to_decimal(products_cost) + to_decimal(platform_fee) + delivery


def calculate_products_cost(items) -> Decimal:
    return sum((to_decimal(item["price"]) * item["quantity"] for item in items), Decimal("0"))


async def get_order_document(db, order_id: str) -> dict:
    order = await db[ORDERS].find_one({"_id": order_id})
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def create_from_cart(db, hospital_id: str, delivery_address_id: str, user_id: str) -> OrderResponse:
    """
    Freeze the hospital cart into an order awaiting a logistics quote.
    The cart is emptied against the exact snapshot that was priced.
    """
    logger.info(f"User {user_id} creating order for hospital {hospital_id} (address {delivery_address_id})")
    await require_owner(db, hospital_id, user_id)
    address = await get_delivery_address(db, delivery_address_id, hospital_id)

    cart = await cart_service.get_or_create_cart(db, hospital_id)
    if not cart["items"]:
        raise StateError("Shopping cart is empty. Add items before creating an order.",
                         entity="ShoppingCart", entity_id=cart["_id"], field="items")

    items = [{
        "product_id": item["product_id"],
        "seller_id": item["seller_id"],
        "product_name": item.get("product_name"),
        "quantity": item["quantity"],
        "price": item["price"],
        "type": item["type"],
        "offer_id": item.get("offer_id")
    } for item in cart["items"]]

    products_cost = calculate_products_cost(items)
    platform_fee = round_money(products_cost * PLATFORM_FEE_RATE)
    now = get_current_datetime()
    order_data = {
        "_id": generate_order_id(),
        "hospital_id": hospital_id,
        "delivery_address_id": delivery_address_id,
        "delivery_address": {
            k: address.get(k) for k in ("label", "street", "city", "postal_code", "country")
        },
        "items": items,
        "status": OrderStatus.CALCULATING_LOGISTICS.value,
        "products_cost": to_decimal128(products_cost),
        "platform_fee": to_decimal128(platform_fee),
        "delivery_fee": None,
        "total_cost": to_decimal128(calculate_total_cost(products_cost, platform_fee)),
        "paid": False,
        "stock_debited": False,
        "created_at": now,
        "updated_at": None,
        "completed_at": None,
        "paid_at": None
    }

    async with transaction(db) as session:
        await cart_service.checkout_items(db, cart, session=session)
        try:
            await db[ORDERS].insert_one(order_data, session=session)
        except Exception:
            if session is not None:
                raise
            logger.error(f"Failed to store order for hospital {hospital_id}, restoring cart")
            await cart_service.restore_items(db, cart)
            raise

    logger.info(f"Order created with ID: {order_data['_id']} for hospital {hospital_id}; cart cleared")
    return OrderResponse.model_validate(order_data)


def _validate_transition(order: dict, new_status: OrderStatus) -> None:
    current = OrderStatus(order["status"])
    if current in TERMINAL_STATUSES:
        raise StateError(
            f"Cannot change status of a {current.value.lower()} order",
            entity="Order", entity_id=order["_id"], field="status"
        )
    allowed = ORDER_TRANSITIONS[current]
    if new_status not in allowed:
        targets = " or ".join(sorted(s.value for s in allowed))
        raise StateError(
            f"From {current.value} can only move to {targets}",
            entity="Order", entity_id=order["_id"], field="status"
        )


async def transition_status(db, order_id: str, new_status: OrderStatus, delivery_fee=None) -> OrderResponse:
    """
    Move an order along the lifecycle.
    Entering CONFIRMING_PAYMENT requires the delivery fee quoted by logistics.
    """
    logger.info(f"Admin updating order {order_id} to status {new_status.value}")
    order = await get_order_document(db, order_id)
    _validate_transition(order, new_status)

    now = get_current_datetime()
    update = {"status": new_status.value, "updated_at": now}
    fee = order.get("delivery_fee")

    if new_status == OrderStatus.CONFIRMING_PAYMENT:
        if delivery_fee is None:
            raise ValidationError(
                "Delivery fee is required when changing status to CONFIRMING_PAYMENT",
                entity="Order", entity_id=order_id, field="delivery_fee"
            )
        fee = round_money(delivery_fee)
        if fee < 0:
            raise ValidationError("Delivery fee must be non-negative",
                                  entity="Order", entity_id=order_id, field="delivery_fee")
        update["delivery_fee"] = to_decimal128(fee)
        logger.info(f"Delivery fee set to {fee} for order {order_id}")

    if new_status == OrderStatus.COMPLETED and order.get("completed_at") is None:
        update["completed_at"] = now

    update["total_cost"] = to_decimal128(
        calculate_total_cost(order["products_cost"], order["platform_fee"], fee)
    )

    updated = await db[ORDERS].find_one_and_update(
        {"_id": order_id, "status": order["status"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER
    )
    if updated is None:
        raise ConflictError(
            f"Order {order_id} status changed concurrently, reload and try again",
            entity="Order", entity_id=order_id, field="status"
        )

    logger.info(f"Order {order_id} status updated to {new_status.value}")
    return OrderResponse.model_validate(updated)



async def _settle(db, order: dict, charge_wallet: bool, session=None) -> None:
    """Consume stock and optionally charge the buyer wallet, all or nothing."""
    await inventory_service.debit_stock(db, order["items"], session=session)
    if not charge_wallet:
        return
    try:
        await wallet_service.record_transaction(
            db, order["hospital_id"], TransactionType.WITHDRAW, order["total_cost"],
            description=f"Payment for order {order['_id']}",
            order_id=order["_id"],
            session=session
        )
    except Exception:
        if session is None:
            logger.warning(f"Wallet charge failed for order {order['_id']}, restoring stock")
            await inventory_service.restore_stock(
                db, inventory_service.quantities_by_product(order["items"])
            )
        raise


async def set_paid(db, order_id: str, paid: bool, charge_wallet: bool = False) -> OrderResponse:
    """
    Update the paid flag.
    The first false -> true flip debits stock for every item (and, with
    charge_wallet, withdraws total_cost from the buyer) in one transaction;
    if any product is short nothing is debited and the order stays unpaid.
    The wallet can only be charged once the delivery fee is known.
    """
    logger.info(f"Admin updating order {order_id} paid status to {paid}")
    order = await get_order_document(db, order_id)
    if OrderStatus(order["status"]) in TERMINAL_STATUSES:
        raise StateError(
            f"Cannot change payment of a {order['status'].lower()} order",
            entity="Order", entity_id=order_id, field="paid"
        )

    now = get_current_datetime()
    if not paid or order.get("paid") or order.get("stock_debited"):
        if bool(order.get("paid")) == paid:
            return OrderResponse.model_validate(order)
        updated = await db[ORDERS].find_one_and_update(
            {"_id": order_id},
            {"$set": {"paid": paid, "updated_at": now}},
            return_document=ReturnDocument.AFTER
        )
        logger.info(f"Order {order_id} paid status updated to {paid} without stock change")
        return OrderResponse.model_validate(updated)

    if charge_wallet and order.get("delivery_fee") is None:
        raise StateError(
            "Cannot charge the wallet before the delivery fee is set",
            entity="Order", entity_id=order_id, field="delivery_fee"
        )

    async with transaction(db) as session:
        # claim the order so a concurrent flip cannot debit twice
        claimed = await db[ORDERS].find_one_and_update(
            {
                "_id": order_id,
                "paid": False,
                "stock_debited": {"$ne": True},
                "settling": {"$ne": True},
                "status": {"$nin": [s.value for s in TERMINAL_STATUSES]}
            },
            {"$set": {"settling": True}},
            return_document=ReturnDocument.AFTER,
            session=session
        )
        if claimed is None:
            raise ConflictError(
                f"Order {order_id} payment is being updated concurrently",
                entity="Order", entity_id=order_id, field="paid"
            )

        logger.info(f"Order {order_id} is being marked as paid, reducing product quantities")
        try:
            await _settle(db, claimed, charge_wallet, session)
        except Exception:
            if session is None:
                await db[ORDERS].update_one({"_id": order_id}, {"$unset": {"settling": ""}})
            raise

        updated = await db[ORDERS].find_one_and_update(
            {"_id": order_id},
            {
                "$set": {"paid": True, "stock_debited": True, "paid_at": now, "updated_at": now},
                "$unset": {"settling": ""}
            },
            return_document=ReturnDocument.AFTER,
            session=session
        )

    logger.info(f"Order {order_id} marked as paid")
    return OrderResponse.model_validate(updated)


async def get_order(db, order_id: str) -> OrderResponse:
    return OrderResponse.model_validate(await get_order_document(db, order_id))


async def get_order_for_user(db, hospital_id: str, order_id: str, user_id: str) -> OrderResponse:
    await require_owner(db, hospital_id, user_id)
    order = await get_order_document(db, order_id)
    if order["hospital_id"] != hospital_id:
        raise NotFoundError("Order", order_id)
    return OrderResponse.model_validate(order)


async def list_orders(db, hospital_id: str) -> List[OrderResponse]:
    """All orders of a buyer hospital, newest first."""
    orders = await db[ORDERS].find({"hospital_id": hospital_id}) \
        .sort("created_at", -1) \
        .to_list(length=None)
    logger.info(f"Found {len(orders)} total orders for hospital {hospital_id}")
    return [OrderResponse.model_validate(o) for o in orders]


async def list_pending_orders(db, hospital_id: str) -> List[OrderResponse]:
    """Orders not yet COMPLETED or CANCELED, newest first."""
    orders = await db[ORDERS].find({
        "hospital_id": hospital_id,
        "status": {"$nin": [s.value for s in TERMINAL_STATUSES]}
    }).sort("created_at", -1).to_list(length=None)
    logger.info(f"Found {len(orders)} pending orders for hospital {hospital_id}")
    return [OrderResponse.model_validate(o) for o in orders]


async def get_sales_history(db, seller_hospital_id: str) -> List[SalesHistoryResponse]:
    """
    Orders containing products sold by the hospital, with only that
    hospital's items and a subtotal over them.
    """
    orders = await db[ORDERS].find({"items.seller_id": seller_hospital_id}) \
        .sort("created_at", -1) \
        .to_list(length=None)

    buyer_ids = list({o["hospital_id"] for o in orders})
    buyers = await db[HOSPITALS].find({"_id": {"$in": buyer_ids}}).to_list(length=None)
    buyer_names = {b["_id"]: b.get("name") for b in buyers}

    history = []
    for order in orders:
        sold_items = [item for item in order["items"] if item["seller_id"] == seller_hospital_id]
        history.append(SalesHistoryResponse(
            order_id=order["_id"],
            buyer_hospital_id=order["hospital_id"],
            buyer_hospital_name=buyer_names.get(order["hospital_id"]),
            status=order["status"],
            paid=order["paid"],
            sold_items=sold_items,
            total_sales_amount=calculate_products_cost(sold_items),
            created_at=order["created_at"],
            completed_at=order.get("completed_at")
        ))

    logger.info(f"Found {len(history)} orders in sales history for hospital {seller_hospital_id}")
    return history

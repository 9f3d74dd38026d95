# services/offer_service.py
"""
Offer negotiation between a buyer (the creator) and a seller hospital.

PENDING is the only mutable state. ACCEPTED, REJECTED and CANCELED are
terminal; every transition is a conditional update on ``status`` so two
concurrent transitions cannot both succeed. While an offer holds its
(creator, hospital) slot it carries ``pending_key``, which a sparse unique
index keeps to one offer per pair.
"""
import logging
from typing import List, Optional
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from database import OFFERS, transaction
from errors import (
    AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
)
from models.offers import OfferLine, OfferResponse, OfferStatus, UserOffersResponse
from services import cart_service
from services.hospital_service import find_hospital_for_owner, get_hospital
from services.inventory_service import ensure_available, find_products, get_product
from utils import generate_offer_id, get_current_datetime, to_decimal128

logger = logging.getLogger(__name__)


def pending_key(creator_id: str, hospital_id: str) -> str:
    return f"{creator_id}:{hospital_id}"


async def get_offer_document(db, offer_id: str) -> dict:
    offer = await db[OFFERS].find_one({"_id": offer_id})
    if not offer:
        raise NotFoundError("Offer", offer_id)
    return offer


async def _build_lines(db, hospital_id: str, lines: List[OfferLine]) -> List[dict]:
    """Validate requested lines and freeze their price and quantity."""
    if not lines:
        raise ValidationError("Offer must contain at least one product", entity="Offer", field="products")

    for line in lines:
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError(
                f"Quantity must be greater than 0 for product: {line.product_id}",
                entity="Product", entity_id=line.product_id, field="quantity"
            )
        if line.price is None or line.price < 0:
            raise ValidationError(
                f"Price must be non-negative for product: {line.product_id}",
                entity="Product", entity_id=line.product_id, field="price"
            )

    products = await find_products(db, [line.product_id for line in lines])
    frozen = []
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise ValidationError(
                f"Product not found with ID: {line.product_id}",
                entity="Product", entity_id=line.product_id, field="product_id"
            )
        if product["seller_id"] != hospital_id:
            raise ValidationError(
                f"Product {line.product_id} is not listed by hospital {hospital_id}",
                entity="Product", entity_id=line.product_id, field="product_id"
            )
        ensure_available(product, line.quantity)
        frozen.append({
            "product_id": line.product_id,
            "product_name": product.get("name"),
            "quantity": line.quantity,
            "price": to_decimal128(line.price)
        })
    return frozen


def _require_creator(offer: dict, user_id: str, action: str) -> None:
    if offer["creator_id"] != user_id:
        raise AuthorizationError(
            f"Only the creator can {action} an offer",
            entity="Offer", entity_id=offer["_id"]
        )


async def _require_seller_owner(db, offer: dict, user_id: str, action: str) -> None:
    hospital = await get_hospital(db, offer["hospital_id"])
    if hospital.get("owner_id") != user_id:
        raise AuthorizationError(
            f"Only the owner of hospital {offer['hospital_id']} can {action} this offer",
            entity="Offer", entity_id=offer["_id"]
        )


def _require_pending(offer: dict, action: str) -> None:
    if offer["status"] != OfferStatus.PENDING.value:
        raise StateError(
            f"Cannot {action} offer. Current status: {offer['status']}",
            entity="Offer", entity_id=offer["_id"], field="status"
        )


async def _transition(db, offer: dict, new_status: OfferStatus, release_slot: bool = True,
                      session=None) -> dict:
    """Move a PENDING offer to new_status; fails if it left PENDING meanwhile."""
    update = {"$set": {"status": new_status.value, "updated_at": get_current_datetime()}}
    if release_slot:
        update["$unset"] = {"pending_key": ""}

    updated = await db[OFFERS].find_one_and_update(
        {"_id": offer["_id"], "status": OfferStatus.PENDING.value},
        update,
        return_document=ReturnDocument.AFTER,
        session=session
    )
    if updated is None:
        current = await get_offer_document(db, offer["_id"])
        raise StateError(
            f"Offer {offer['_id']} is no longer pending. Current status: {current['status']}",
            entity="Offer", entity_id=offer["_id"], field="status"
        )
    return updated


async def create_offer(db, hospital_id: str, creator_id: str, lines: List[OfferLine]) -> OfferResponse:
    logger.info(f"Creating new offer for hospital {hospital_id} by user {creator_id}")

    hospital = await get_hospital(db, hospital_id)
    if hospital.get("owner_id") == creator_id:
        raise ValidationError("Cannot create an offer for your own hospital",
                              entity="Hospital", entity_id=hospital_id, field="hospital_id")

    if await get_pending_offer(db, creator_id, hospital_id):
        raise ConflictError(
            "You already have a pending offer for this hospital. "
            "Please wait for it to be accepted or rejected, or cancel it before creating a new one.",
            entity="Offer", field="hospital_id"
        )

    frozen_lines = await _build_lines(db, hospital_id, lines)
    now = get_current_datetime()
    offer_data = {
        "_id": generate_offer_id(),
        "hospital_id": hospital_id,
        "creator_id": creator_id,
        "lines": frozen_lines,
        "status": OfferStatus.PENDING.value,
        "pending_key": pending_key(creator_id, hospital_id),
        "created_at": now,
        "updated_at": None
    }
    try:
        await db[OFFERS].insert_one(offer_data)
    except DuplicateKeyError:
        raise ConflictError(
            "You already have a pending offer for this hospital.",
            entity="Offer", field="hospital_id"
        )

    logger.info(f"Offer created with ID: {offer_data['_id']}")
    return OfferResponse.model_validate(offer_data)


async def update_offer(db, offer_id: str, lines: List[OfferLine], user_id: str) -> OfferResponse:
    """Replace the whole line set of a pending offer."""
    logger.info(f"Updating offer {offer_id} by user {user_id}")
    offer = await get_offer_document(db, offer_id)
    _require_creator(offer, user_id, "update")
    _require_pending(offer, "update")

    frozen_lines = await _build_lines(db, offer["hospital_id"], lines)
    updated = await db[OFFERS].find_one_and_update(
        {"_id": offer_id, "status": OfferStatus.PENDING.value},
        {"$set": {"lines": frozen_lines, "updated_at": get_current_datetime()}},
        return_document=ReturnDocument.AFTER
    )
    if updated is None:
        raise StateError(
            "Cannot update offer. Only pending offers can be updated.",
            entity="Offer", entity_id=offer_id, field="status"
        )

    logger.info(f"Offer {offer_id} updated with {len(frozen_lines)} products")
    return OfferResponse.model_validate(updated)


async def cancel_offer(db, offer_id: str, user_id: str) -> OfferResponse:
    logger.info(f"Canceling offer {offer_id} by user {user_id}")
    offer = await get_offer_document(db, offer_id)
    _require_creator(offer, user_id, "cancel")
    _require_pending(offer, "cancel")

    updated = await _transition(db, offer, OfferStatus.CANCELED)
    logger.info(f"Offer {offer_id} canceled successfully")
    return OfferResponse.model_validate(updated)


async def reject_offer(db, offer_id: str, user_id: str) -> OfferResponse:
    logger.info(f"Rejecting offer {offer_id} by user {user_id}")
    offer = await get_offer_document(db, offer_id)
    await _require_seller_owner(db, offer, user_id, "reject")
    _require_pending(offer, "reject")

    updated = await _transition(db, offer, OfferStatus.REJECTED)
    logger.info(f"Offer {offer_id} rejected successfully")
    return OfferResponse.model_validate(updated)


async def accept_offer(db, offer_id: str, user_id: str) -> OfferResponse:
    """
    Accept a pending offer and move its lines into the creator's cart.

    Stock is re-checked but not reserved. The status flip and the cart
    insertion run in one transaction; without transactions a failed cart
    write puts the offer back to PENDING before the error propagates.
    """
    logger.info(f"Accepting offer {offer_id} by user {user_id}")
    offer = await get_offer_document(db, offer_id)
    await _require_seller_owner(db, offer, user_id, "accept")
    _require_pending(offer, "accept")

    buyer_hospital = await find_hospital_for_owner(db, offer["creator_id"])
    if buyer_hospital is None:
        raise NotFoundError(
            "Hospital", None,
            message=f"Creator {offer['creator_id']} does not own a hospital. Cannot add products to shopping cart."
        )

    cart_lines = []
    for line in offer["lines"]:
        product = await get_product(db, line["product_id"])
        ensure_available(product, line["quantity"])
        cart_lines.append({**line, "seller_id": product["seller_id"]})

    async with transaction(db) as session:
        # keep the pair slot until the cart holds the group
        accepted = await _transition(db, offer, OfferStatus.ACCEPTED, release_slot=False, session=session)
        try:
            await cart_service.add_offer_group(db, buyer_hospital["_id"], offer_id, cart_lines, session=session)
        except Exception:
            if session is None:
                logger.warning(f"Cart insertion failed for offer {offer_id}, reverting to PENDING")
                await db[OFFERS].update_one(
                    {"_id": offer_id, "status": OfferStatus.ACCEPTED.value},
                    {"$set": {"status": OfferStatus.PENDING.value, "updated_at": get_current_datetime()}}
                )
            raise

        await db[OFFERS].update_one({"_id": offer_id}, {"$unset": {"pending_key": ""}}, session=session)
        accepted.pop("pending_key", None)

    logger.info(f"Offer {offer_id} accepted and products added to cart of hospital {buyer_hospital['_id']}")
    return OfferResponse.model_validate(accepted)


async def get_offer(db, offer_id: str) -> OfferResponse:
    return OfferResponse.model_validate(await get_offer_document(db, offer_id))


async def get_pending_offer(db, creator_id: str, hospital_id: str) -> Optional[OfferResponse]:
    offer = await db[OFFERS].find_one({
        "creator_id": creator_id,
        "hospital_id": hospital_id,
        "status": OfferStatus.PENDING.value
    })
    return OfferResponse.model_validate(offer) if offer else None


async def list_offers_by_creator(db, creator_id: str,
                                 status: Optional[OfferStatus] = None) -> List[OfferResponse]:
    query = {"creator_id": creator_id}
    if status:
        query["status"] = status.value
    offers = await db[OFFERS].find(query).sort("created_at", -1).to_list(length=None)
    return [OfferResponse.model_validate(o) for o in offers]


async def list_offers_by_hospital(db, hospital_id: str,
                                  status: Optional[OfferStatus] = None) -> List[OfferResponse]:
    await get_hospital(db, hospital_id)
    query = {"hospital_id": hospital_id}
    if status:
        query["status"] = status.value
    offers = await db[OFFERS].find(query).sort("created_at", -1).to_list(length=None)
    return [OfferResponse.model_validate(o) for o in offers]


async def get_offers_for_user(db, user_id: str) -> UserOffersResponse:
    """Offers created by the user and offers received by the user's hospital."""
    created = await list_offers_by_creator(db, user_id)
    hospital = await find_hospital_for_owner(db, user_id)
    received = await list_offers_by_hospital(db, hospital["_id"]) if hospital else []

    logger.info(f"Found {len(created)} created offers and {len(received)} received offers for user {user_id}")
    return UserOffersResponse(created_offers=created, received_offers=received)


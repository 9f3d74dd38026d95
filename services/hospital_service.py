# services/hospital_service.py
import logging
from pymongo.errors import DuplicateKeyError
from database import HOSPITALS, DELIVERY_ADDRESSES, CARTS
from errors import NotFoundError, AuthorizationError, ConflictError, ValidationError
from models.hospitals import HospitalCreate, HospitalResponse, DeliveryAddressCreate, DeliveryAddressResponse
from utils import (
    generate_hospital_id, generate_address_id, generate_cart_id,
    get_current_datetime, to_decimal128
)

logger = logging.getLogger(__name__)


def new_cart_document(hospital_id: str) -> dict:
    now = get_current_datetime()
    return {
        "_id": generate_cart_id(),
        "hospital_id": hospital_id,
        "items": [],
        "version": 0,
        "created_at": now,
        "updated_at": now
    }


async def create_hospital(db, data: HospitalCreate) -> HospitalResponse:
    """Register a hospital with a zero balance and an empty cart."""
    hospital_id = generate_hospital_id()
    hospital_data = data.model_dump()
    hospital_data.update({
        "_id": hospital_id,
        "balance": to_decimal128(0),
        "ledger_seq": 0,
        "created_at": get_current_datetime(),
        "updated_at": None
    })

    await db[HOSPITALS].insert_one(hospital_data)
    await db[CARTS].insert_one(new_cart_document(hospital_id))

    logger.info(f"Hospital {hospital_id} created: {data.name}")
    return HospitalResponse.model_validate(hospital_data)


async def get_hospital(db, hospital_id: str) -> dict:
    hospital = await db[HOSPITALS].find_one({"_id": hospital_id})
    if not hospital:
        raise NotFoundError("Hospital", hospital_id)
    return hospital


async def find_hospital_for_owner(db, user_id: str):
    return await db[HOSPITALS].find_one({"owner_id": user_id})


async def get_hospital_for_owner(db, user_id: str) -> dict:
    hospital = await find_hospital_for_owner(db, user_id)
    if not hospital:
        raise NotFoundError(
            "Hospital", None,
            message=f"No hospital profile found for user ID: {user_id}"
        )
    return hospital


async def require_owner(db, hospital_id: str, user_id: str) -> dict:
    """Load a hospital and check that user_id owns it."""
    hospital = await get_hospital(db, hospital_id)
    if hospital.get("owner_id") != user_id:
        raise AuthorizationError(
            f"User {user_id} is not the owner of hospital {hospital_id}",
            entity="Hospital",
            entity_id=hospital_id
        )
    return hospital


async def assign_owner(db, hospital_id: str, user_id: str) -> HospitalResponse:
    await get_hospital(db, hospital_id)

    owned = await find_hospital_for_owner(db, user_id)
    if owned:
        raise ConflictError(
            f"User {user_id} already owns hospital {owned['_id']}",
            entity="Hospital",
            entity_id=owned["_id"],
            field="owner_id"
        )

    try:
        result = await db[HOSPITALS].update_one(
            {"_id": hospital_id, "owner_id": {"$exists": False}},
            {"$set": {"owner_id": user_id, "updated_at": get_current_datetime()}}
        )
    except DuplicateKeyError:
        raise ConflictError(
            f"User {user_id} already owns a hospital",
            entity="Hospital",
            entity_id=hospital_id,
            field="owner_id"
        )

    if result.modified_count == 0:
        raise ConflictError(
            f"Hospital {hospital_id} already has an owner",
            entity="Hospital",
            entity_id=hospital_id,
            field="owner_id"
        )

    logger.info(f"User {user_id} assigned as owner of hospital {hospital_id}")
    return HospitalResponse.model_validate(await get_hospital(db, hospital_id))


async def add_delivery_address(db, hospital_id: str, data: DeliveryAddressCreate,
                               user_id: str) -> DeliveryAddressResponse:
    await require_owner(db, hospital_id, user_id)

    address_data = data.model_dump()
    address_data.update({
        "_id": generate_address_id(),
        "hospital_id": hospital_id,
        "created_at": get_current_datetime()
    })
    await db[DELIVERY_ADDRESSES].insert_one(address_data)

    logger.info(f"Delivery address {address_data['_id']} added for hospital {hospital_id}")
    return DeliveryAddressResponse.model_validate(address_data)


async def list_delivery_addresses(db, hospital_id: str, user_id: str):
    await require_owner(db, hospital_id, user_id)
    addresses = await db[DELIVERY_ADDRESSES].find({"hospital_id": hospital_id}) \
        .sort("created_at", 1) \
        .to_list(length=None)
    return [DeliveryAddressResponse.model_validate(a) for a in addresses]


async def get_delivery_address(db, address_id: str, hospital_id: str) -> dict:
    """Load an address and check it belongs to hospital_id."""
    address = await db[DELIVERY_ADDRESSES].find_one({"_id": address_id})
    if not address:
        raise NotFoundError("DeliveryAddress", address_id)
    if address["hospital_id"] != hospital_id:
        raise ValidationError(
            "Delivery address does not belong to this hospital",
            entity="DeliveryAddress",
            entity_id=address_id,
            field="delivery_address_id"
        )
    return address

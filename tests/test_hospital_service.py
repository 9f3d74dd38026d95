"""Tests for hospital registration, ownership and delivery addresses."""

import pytest

from conftest import BUYER_OWNER, OUTSIDER, SELLER_OWNER, make_address
from database import CARTS
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from models.hospitals import HospitalCreate
from services import hospital_service


class TestCreateHospital:
    async def test_starts_with_zero_balance_and_empty_cart(self, db):
        hospital = await hospital_service.create_hospital(
            db, HospitalCreate(name="General", address="1 Road", company_name="General Co")
        )
        assert hospital.balance == 0
        assert hospital.owner_id is None

        cart = await db[CARTS].find_one({"hospital_id": hospital.id})
        assert cart["items"] == []
        assert cart["version"] == 0

    async def test_unknown_hospital(self, db):
        with pytest.raises(NotFoundError):
            await hospital_service.get_hospital(db, "HOSP-MISSING")


class TestAssignOwner:
    async def test_user_owns_at_most_one_hospital(self, db, market):
        other = await hospital_service.create_hospital(
            db, HospitalCreate(name="Third", address="3 Road", company_name="Third Co")
        )
        with pytest.raises(ConflictError):
            await hospital_service.assign_owner(db, other.id, SELLER_OWNER)

    async def test_hospital_keeps_its_first_owner(self, db, market):
        with pytest.raises(ConflictError):
            await hospital_service.assign_owner(db, market.seller_id, OUTSIDER)

    async def test_owner_lookup(self, db, market):
        hospital = await hospital_service.get_hospital_for_owner(db, BUYER_OWNER)
        assert hospital["_id"] == market.buyer_id

        with pytest.raises(NotFoundError):
            await hospital_service.get_hospital_for_owner(db, OUTSIDER)


class TestDeliveryAddresses:
    async def test_only_owner_can_add(self, db, market):
        with pytest.raises(AuthorizationError):
            await hospital_service.add_delivery_address(db, market.buyer_id, make_address(), SELLER_OWNER)

    async def test_list_addresses(self, db, market):
        await hospital_service.add_delivery_address(
            db, market.buyer_id, make_address(label="Warehouse"), BUYER_OWNER
        )
        addresses = await hospital_service.list_delivery_addresses(db, market.buyer_id, BUYER_OWNER)
        assert [a.label for a in addresses] == ["Main entrance", "Warehouse"]

    async def test_address_must_belong_to_hospital(self, db, market):
        with pytest.raises(ValidationError):
            await hospital_service.get_delivery_address(db, market.address_id, market.seller_id)

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List
from database import get_database
from models.hospitals import (
    HospitalCreate, HospitalResponse, AssignOwnerRequest,
    DeliveryAddressCreate, DeliveryAddressResponse, DeliveryAddressList
)
from models.products import ProductListing, ProductResponse
from security import get_current_admin, get_current_user
from services import hospital_service, inventory_service

router = APIRouter()

# Admin Routes
@router.post("/admin/hospitals", response_model=HospitalResponse, status_code=201)
async def create_hospital(
    hospital: HospitalCreate,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Register a hospital and provision its shopping cart"""
    return await hospital_service.create_hospital(db, hospital)

@router.put("/admin/hospitals/{hospital_id}/owner", response_model=HospitalResponse)
async def assign_owner(
    hospital_id: str,
    request: AssignOwnerRequest,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await hospital_service.assign_owner(db, hospital_id, request.user_id)

@router.get("/admin/hospitals/{hospital_id}", response_model=HospitalResponse)
async def get_hospital(
    hospital_id: str,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital(db, hospital_id)
    return HospitalResponse.model_validate(hospital)

@router.post("/admin/hospitals/{hospital_id}/products", response_model=List[ProductResponse], status_code=201)
async def add_products(
    hospital_id: str,
    products: List[ProductListing],
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    List products for a hospital.
    Same code + lot number adds to the existing quantity.
    """
    await hospital_service.get_hospital(db, hospital_id)
    return await inventory_service.add_products(db, hospital_id, products)

# Owner Routes
@router.get("/hospitals/me", response_model=HospitalResponse)
async def get_my_hospital(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return HospitalResponse.model_validate(hospital)

@router.post("/hospitals/{hospital_id}/delivery-addresses", response_model=DeliveryAddressResponse, status_code=201)
async def add_delivery_address(
    hospital_id: str,
    address: DeliveryAddressCreate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await hospital_service.add_delivery_address(db, hospital_id, address, user["user_id"])

@router.get("/hospitals/{hospital_id}/delivery-addresses", response_model=DeliveryAddressList)
async def list_delivery_addresses(
    hospital_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    addresses = await hospital_service.list_delivery_addresses(db, hospital_id, user["user_id"])
    return {"total": len(addresses), "addresses": addresses}

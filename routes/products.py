# routes/products.py
from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List
from database import get_database
from models.products import ProductResponse
from security import get_current_user
from services import hospital_service, inventory_service

router = APIRouter()

@router.get("", response_model=List[ProductResponse])
async def list_marketplace_products(
    include_own: bool = Query(False),
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """In-stock products from every seller"""
    exclude = None
    if not include_own:
        hospital = await hospital_service.find_hospital_for_owner(db, user["user_id"])
        exclude = hospital["_id"] if hospital else None
    return await inventory_service.list_marketplace_products(db, exclude_hospital_id=exclude)

@router.get("/hospital/{hospital_id}", response_model=List[ProductResponse])
async def list_hospital_products(
    hospital_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    await hospital_service.get_hospital(db, hospital_id)
    return await inventory_service.list_products_for_hospital(db, hospital_id)

@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    product = await inventory_service.get_product(db, product_id)
    return ProductResponse.model_validate(product)

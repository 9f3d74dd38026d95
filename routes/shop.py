from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List
from database import get_database
from models.cart import AddToCartRequest, ShoppingCartResponse
from models.orders import SalesHistoryResponse
from security import get_current_user
from services import cart_service, hospital_service, order_service

router = APIRouter()

@router.get("/cart", response_model=ShoppingCartResponse)
async def get_cart(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await cart_service.get_cart(db, hospital["_id"], user["user_id"])

@router.post("/cart/items", response_model=ShoppingCartResponse)
async def add_cart_item(
    request: AddToCartRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await cart_service.add_single_item(
        db, hospital["_id"], request.product_id, request.quantity, user["user_id"]
    )

@router.delete("/cart/items/{item_id}", response_model=ShoppingCartResponse)
async def remove_cart_item(
    item_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    SINGLE items are removed alone.
    OFFER items are removed together with every item of the same offer.
    """
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await cart_service.remove_item(db, hospital["_id"], item_id, user["user_id"])

@router.get("/sales", response_model=List[SalesHistoryResponse])
async def get_sales_history(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Orders containing products sold by the caller's hospital"""
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await order_service.get_sales_history(db, hospital["_id"])

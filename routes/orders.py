from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List
from database import get_database
from models.orders import OrderCreate, OrderResponse
from security import get_current_user
from services import hospital_service, order_service

router = APIRouter()

@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    request: OrderCreate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    Request a delivery price: freezes the shopping cart into an order
    in CALCULATING_LOGISTICS and clears the cart.
    """
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await order_service.create_from_cart(
        db, hospital["_id"], request.delivery_address_id, user["user_id"]
    )

@router.get("", response_model=List[OrderResponse])
async def get_orders(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await order_service.list_orders(db, hospital["_id"])

@router.get("/pending", response_model=List[OrderResponse])
async def get_pending_orders(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await order_service.list_pending_orders(db, hospital["_id"])

@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await order_service.get_order_for_user(db, hospital["_id"], order_id, user["user_id"])

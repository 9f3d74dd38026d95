from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from database import get_database
from models.orders import OrderStatusUpdate, PaidStatusUpdate, OrderResponse
from security import get_current_admin
from services import order_service

router = APIRouter()

@router.get("/{order_id}", response_model=OrderResponse)
async def get_order_details(
    order_id: str,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await order_service.get_order(db, order_id)

@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    Update order status.
    When changing to CONFIRMING_PAYMENT: delivery_fee is required.
    """
    return await order_service.transition_status(
        db, order_id, request.status, request.delivery_fee
    )

@router.put("/{order_id}/paid", response_model=OrderResponse)
async def update_paid_status(
    order_id: str,
    request: PaidStatusUpdate,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Marking an order paid reduces product quantities from inventory"""
    return await order_service.set_paid(
        db, order_id, request.paid, charge_wallet=request.charge_wallet
    )

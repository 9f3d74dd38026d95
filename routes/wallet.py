from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List, Optional
from database import get_database
from models.wallet import (
    TransactionCreate, BalanceAdjustment, BalanceSet,
    TransactionType, WalletTransactionResponse
)
from security import get_current_admin, get_current_user
from services import hospital_service, wallet_service

router = APIRouter()

@router.get("/transactions", response_model=List[WalletTransactionResponse])
async def get_my_transactions(
    type: Optional[TransactionType] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Wallet history of the caller's hospital, newest first"""
    hospital = await hospital_service.get_hospital_for_owner(db, user["user_id"])
    return await wallet_service.list_transactions(db, hospital["_id"], type)

# Admin Routes
@router.post("/admin/{hospital_id}/transactions", response_model=WalletTransactionResponse, status_code=201)
async def create_transaction(
    hospital_id: str,
    request: TransactionCreate,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await wallet_service.record_transaction(
        db, hospital_id, request.type, request.amount,
        description=request.description, order_id=request.order_id
    )

@router.post("/admin/{hospital_id}/adjust", response_model=WalletTransactionResponse, status_code=201)
async def adjust_balance(
    hospital_id: str,
    request: BalanceAdjustment,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await wallet_service.adjust_balance(db, hospital_id, request.delta, request.description)

@router.put("/admin/{hospital_id}/balance", response_model=Optional[WalletTransactionResponse])
async def set_balance(
    hospital_id: str,
    request: BalanceSet,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await wallet_service.set_balance(db, hospital_id, request.balance, request.description)

@router.get("/admin/{hospital_id}/transactions", response_model=List[WalletTransactionResponse])
async def get_hospital_transactions(
    hospital_id: str,
    type: Optional[TransactionType] = None,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await wallet_service.list_transactions(db, hospital_id, type)

@router.get("/admin/orders/{order_id}/transactions", response_model=List[WalletTransactionResponse])
async def get_order_transactions(
    order_id: str,
    admin: dict = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await wallet_service.list_order_transactions(db, order_id)

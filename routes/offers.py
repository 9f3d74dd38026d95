from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List, Optional
from database import get_database
from models.offers import OfferCreate, OfferUpdate, OfferResponse, OfferStatus, UserOffersResponse
from security import get_current_user
from services import offer_service

router = APIRouter()

@router.post("", response_model=OfferResponse, status_code=201)
async def create_offer(
    offer: OfferCreate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.create_offer(db, offer.hospital_id, user["user_id"], offer.products)

@router.get("/me", response_model=UserOffersResponse)
async def get_my_offers(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Offers created by the caller and offers received by the caller's hospital"""
    return await offer_service.get_offers_for_user(db, user["user_id"])

@router.get("/pending", response_model=Optional[OfferResponse])
async def get_pending_offer(
    hospital_id: str = Query(...),
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.get_pending_offer(db, user["user_id"], hospital_id)

@router.get("/hospital/{hospital_id}", response_model=List[OfferResponse])
async def get_hospital_offers(
    hospital_id: str,
    status: Optional[OfferStatus] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.list_offers_by_hospital(db, hospital_id, status)

@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(
    offer_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.get_offer(db, offer_id)

@router.put("/{offer_id}", response_model=OfferResponse)
async def update_offer(
    offer_id: str,
    offer: OfferUpdate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.update_offer(db, offer_id, offer.products, user["user_id"])

@router.post("/{offer_id}/cancel", response_model=OfferResponse)
async def cancel_offer(
    offer_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.cancel_offer(db, offer_id, user["user_id"])

@router.post("/{offer_id}/accept", response_model=OfferResponse)
async def accept_offer(
    offer_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Accept an offer; its products go to the creator's shopping cart"""
    return await offer_service.accept_offer(db, offer_id, user["user_id"])

@router.post("/{offer_id}/reject", response_model=OfferResponse)
async def reject_offer(
    offer_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    return await offer_service.reject_offer(db, offer_id, user["user_id"])

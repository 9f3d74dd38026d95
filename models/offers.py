from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum
from models.base import Money

class OfferStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"

class OfferLine(BaseModel):
    # bounds are checked by the offer service so they surface as domain errors
    product_id: str
    quantity: int
    price: Money

class OfferCreate(BaseModel):
    hospital_id: str
    products: List[OfferLine]

class OfferUpdate(BaseModel):
    products: List[OfferLine]

class OfferLineResponse(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    quantity: int
    price: Money

class OfferResponse(BaseModel):
    id: str = Field(..., alias="_id")
    hospital_id: str
    creator_id: str
    lines: List[OfferLineResponse]
    status: OfferStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

class UserOffersResponse(BaseModel):
    created_offers: List[OfferResponse]
    received_offers: List[OfferResponse]

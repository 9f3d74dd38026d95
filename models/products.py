# models/products.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum
from models.base import Money

class Unit(str, Enum):
    PIECE = "PIECE"
    BOX = "BOX"
    PACK = "PACK"
    BOTTLE = "BOTTLE"
    VIAL = "VIAL"
    AMPOULE = "AMPOULE"

class ProductListing(BaseModel):
    name: str
    manufacturer: str
    code: str = Field(..., min_length=1)
    lot_number: str = Field(..., min_length=1)
    expiry_date: datetime
    description: Optional[str] = None
    price: Money = Field(ge=0)      # price can't be negative
    quantity: int = Field(gt=0)     # a listing always adds stock
    unit: Unit = Unit.PIECE

class ProductResponse(BaseModel):
    id: str = Field(..., alias="_id")
    seller_id: str
    name: str
    manufacturer: str
    code: str
    lot_number: str
    expiry_date: datetime
    description: Optional[str] = None
    price: Money
    quantity: int
    unit: Unit
    created_at: datetime
    updated_at: Optional[datetime] = None

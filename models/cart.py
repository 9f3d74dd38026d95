from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum
from models.base import Money

class ShopItemType(str, Enum):
    SINGLE = "SINGLE"
    OFFER = "OFFER"

class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int

class ShopItem(BaseModel):
    item_id: str
    product_id: str
    seller_id: str
    product_name: Optional[str] = None
    quantity: int
    price: Money
    type: ShopItemType
    offer_id: Optional[str] = None
    added_at: Optional[datetime] = None

class ShoppingCartResponse(BaseModel):
    id: str = Field(..., alias="_id")
    hospital_id: str
    items: List[ShopItem] = []
    total_items: int = 0
    total_amount: Money = Decimal("0")
    created_at: datetime
    updated_at: Optional[datetime] = None

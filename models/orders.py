from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from models.base import Money
from models.cart import ShopItemType

class OrderStatus(str, Enum):
    CALCULATING_LOGISTICS = "CALCULATING_LOGISTICS"
    CONFIRMING_PAYMENT = "CONFIRMING_PAYMENT"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"

class OrderItem(BaseModel):
    product_id: str
    seller_id: str
    product_name: Optional[str] = None
    quantity: int
    price: Money
    type: ShopItemType
    offer_id: Optional[str] = None

class OrderCreate(BaseModel):
    delivery_address_id: str

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    delivery_fee: Optional[Money] = None

class PaidStatusUpdate(BaseModel):
    paid: bool
    charge_wallet: bool = False

class OrderResponse(BaseModel):
    id: str = Field(..., alias="_id")
    hospital_id: str
    delivery_address_id: str
    delivery_address: Optional[dict] = None
    items: List[OrderItem]
    status: OrderStatus
    products_cost: Money
    platform_fee: Money
    delivery_fee: Optional[Money] = None
    total_cost: Money
    paid: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

class SalesHistoryResponse(BaseModel):
    order_id: str
    buyer_hospital_id: str
    buyer_hospital_name: Optional[str] = None
    status: OrderStatus
    paid: bool
    sold_items: List[OrderItem]
    total_sales_amount: Money
    created_at: datetime
    completed_at: Optional[datetime] = None

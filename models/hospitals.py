from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from models.base import Money

class HospitalCreate(BaseModel):
    name: str = Field(..., min_length=2)
    address: str
    company_name: str
    email: Optional[EmailStr] = None

class AssignOwnerRequest(BaseModel):
    user_id: str = Field(..., min_length=1)

class HospitalResponse(BaseModel):
    id: str = Field(..., alias="_id")
    name: str
    address: str
    company_name: str
    email: Optional[EmailStr] = None
    owner_id: Optional[str] = None
    balance: Money
    created_at: datetime
    updated_at: Optional[datetime] = None

class DeliveryAddressCreate(BaseModel):
    label: Optional[str] = None
    street: str
    city: str
    postal_code: str
    country: str

class DeliveryAddressResponse(DeliveryAddressCreate):
    id: str = Field(..., alias="_id")
    hospital_id: str
    created_at: datetime

class DeliveryAddressList(BaseModel):
    total: int
    addresses: List[DeliveryAddressResponse]

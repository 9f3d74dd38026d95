from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum
from models.base import Money

class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    ADJUSTMENT = "ADJUSTMENT"   # administrative balance correction

class TransactionCreate(BaseModel):
    type: TransactionType
    amount: Money
    description: Optional[str] = None
    order_id: Optional[str] = None

class BalanceAdjustment(BaseModel):
    delta: Money
    description: Optional[str] = None

class BalanceSet(BaseModel):
    balance: Money
    description: Optional[str] = None

class WalletTransactionResponse(BaseModel):
    id: str = Field(..., alias="_id")
    hospital_id: str
    type: TransactionType
    amount: Money
    description: Optional[str] = None
    order_id: Optional[str] = None
    balance_before: Money
    balance_after: Money
    sequence: int
    created_at: datetime

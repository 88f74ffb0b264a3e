from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum


class SplitType(str, Enum):
    EQUAL = "EQUAL"
    EXACT = "EXACT"
    PERCENTAGE = "PERCENTAGE"


class ExpenseMember(BaseModel):
    id: str
    name: str
    email: Optional[str] = None


class CustomSplit(BaseModel):
    user_id: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None


class ExpenseSplit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    amount: Decimal
    type: SplitType
    percentage: Optional[Decimal] = None


class SplitCalculationInput(BaseModel):
    # Range checks happen in the split calculator so failures surface as ValidationError
    total_amount: Decimal
    currency: str
    members: List[ExpenseMember]
    split_type: SplitType
    custom_splits: Optional[List[CustomSplit]] = None


class SplitCalculationResult(BaseModel):
    splits: List[ExpenseSplit]
    total_allocated: Decimal
    remainder: Decimal


class SplitSummary(BaseModel):
    user_id: str
    user_name: str
    amount: Decimal
    type: SplitType
    percentage: Optional[Decimal] = None


class ExpenseRecord(BaseModel):
    """What the balance aggregator needs from a stored expense."""
    amount: Decimal
    creator_id: str
    splits: List[ExpenseSplit] = []


class ExpenseCreate(BaseModel):
    title: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    amount: Decimal
    category: Optional[str] = Field(None, max_length=50)
    split_type: SplitType = SplitType.EQUAL
    participant_ids: Optional[List[str]] = None
    custom_splits: Optional[List[CustomSplit]] = None
    date: Optional[datetime] = None


class ExpenseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    amount: Optional[Decimal] = None
    category: Optional[str] = Field(None, max_length=50)
    split_type: Optional[SplitType] = None
    participant_ids: Optional[List[str]] = None
    custom_splits: Optional[List[CustomSplit]] = None
    date: Optional[datetime] = None


class ExpenseOut(ExpenseRecord):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    title: str
    description: Optional[str] = None
    currency: str
    category: Optional[str] = None
    split_type: SplitType
    date: datetime
    created_at: datetime


class ExpensePage(BaseModel):
    data: List[ExpenseOut]
    page: int
    limit: int
    total: int
    total_pages: int

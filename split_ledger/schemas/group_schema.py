from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal


class GroupBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class GroupCreate(GroupBase):
    # None means the configured default currency
    currency: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    # Note: currency is fixed once the group exists


class GroupOut(GroupBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    currency: str
    owner_id: str
    created_at: datetime


class GroupMemberBase(BaseModel):
    user_id: str
    name: str = Field(..., max_length=100)
    email: Optional[str] = None


class GroupMemberCreate(GroupMemberBase):
    is_admin: bool = False


class GroupMemberOut(GroupMemberBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    is_admin: bool = False
    joined_at: datetime


class GroupWithMembers(GroupOut):
    members: List[GroupMemberOut] = []


class GroupBalance(BaseModel):
    user_id: str
    user_name: str
    balance: Decimal

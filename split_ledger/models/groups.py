import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Integer, Text
from split_ledger.db.database import Base


class Group(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    owner_id = Column(String, nullable=False, index=True)  # Reference to user service (no FK constraint)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # Reference to user service
    name = Column(String(100), nullable=False)
    email = Column(String, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False)  # Join order within the group
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

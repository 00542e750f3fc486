from sqlalchemy import Column, String, Numeric, Integer, Text, Date, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from crm.models.base import Base
from sqlalchemy.sql import func


class Deal(Base):
    __tablename__ = "deals"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    user_id = Column(UUID(as_uuid=True), nullable=False)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="SET NULL"))
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL"))
    title = Column(String(255), nullable=False)
    stage = Column(String(50), server_default="lead")
    amount = Column(Numeric(15, 2))
    probability = Column(Integer)
    expected_close_date = Column(Date)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_deals_user_stage_updated", "user_id", "stage", "updated_at"),)

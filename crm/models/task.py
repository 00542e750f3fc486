from sqlalchemy import Column, String, Text, DateTime, CheckConstraint, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from crm.models.base import Base
from sqlalchemy.sql import func

class Task(Base):
    __tablename__ = "tasks"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    user_id = Column(UUID(as_uuid=True), nullable=False)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"))
    deal_id = Column(UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"))
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, server_default="pending")
    priority = Column(String(20), nullable=False, server_default="medium")
    due_date = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    contact = relationship("Contact", back_populates="tasks")

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'in_progress', 'completed')", name="ck_task_status"),
        CheckConstraint("priority IN ('high', 'medium', 'low')", name="ck_task_priority"),
        Index("ix_tasks_user_status_due", "user_id", "status", "due_date"),
    )

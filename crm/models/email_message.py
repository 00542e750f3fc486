from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from crm.models.base import Base
from sqlalchemy.sql import func
from sqlalchemy import text

class EmailMessage(Base):
    __tablename__ = "emails"
    id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    user_id = Column(UUID(as_uuid=True), nullable=False)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id", ondelete="SET NULL"))
    enrollment_id = Column(UUID(as_uuid=True), ForeignKey("sequence_enrollments.id", ondelete="SET NULL"))
    subject = Column(String(255))
    body = Column(Text)
    to_email = Column(String(255))
    from_email = Column(String(255))
    external_id = Column(String(255))
    is_outbound = Column(Boolean, nullable=False, server_default=text("true"))
    sent_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_emails_user_contact", "user_id", "contact_id"),)

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from crm.models.base import Base
from sqlalchemy.sql import func
from sqlalchemy import text


class Contact(Base):
    """A person tracked in the CRM and the unit of lead scoring.

    ``engagement_score`` is derived: it mirrors the latest
    ``LeadScore.score`` and is written only by the scoring pass.
    """

    __tablename__ = "contacts"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL")
    )
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    position = Column(String(100))
    notes = Column(Text)
    engagement_score = Column(Integer, nullable=False, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    company = relationship("Company", back_populates="contacts")
    activities = relationship(
        "Activity", back_populates="contact", cascade="all, delete-orphan"
    )
    tasks = relationship("Task", back_populates="contact", cascade="all, delete-orphan")
    lead_score = relationship(
        "LeadScore", back_populates="contact", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_contacts_user_id", "user_id"),
        Index("ix_contacts_user_updated", "user_id", "updated_at"),
        CheckConstraint(
            "engagement_score BETWEEN 0 AND 100", name="ck_engagement_score_range"
        ),
    )

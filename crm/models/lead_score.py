from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from crm.models.base import Base
from sqlalchemy.sql import func
from sqlalchemy import text


class LeadScore(Base):
    """Current aggregate engagement score of one contact.

    ``signals`` holds the snapshot of the last scoring pass and
    ``score_history`` the last 30 ``{score, timestamp}`` entries in
    chronological order.  ``last_calculated_at`` doubles as the row
    version for the conditional update that serialises concurrent
    passes on the same contact.
    """

    __tablename__ = "lead_scores"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    contact_id = Column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
    )
    score = Column(Integer, nullable=False, server_default=text("0"))
    signals = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    score_history = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    last_calculated_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    contact = relationship("Contact", back_populates="lead_score")

    __table_args__ = (
        UniqueConstraint("contact_id", name="uq_lead_scores_contact_id"),
        CheckConstraint("score BETWEEN 0 AND 100", name="ck_lead_score_range"),
        Index("ix_lead_scores_user_score", "user_id", "score"),
    )

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from crm.models.base import Base
from sqlalchemy.sql import func
from sqlalchemy import text


class EmailSequence(Base):
    __tablename__ = "email_sequences"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    steps = relationship(
        "SequenceStep",
        back_populates="sequence",
        cascade="all, delete-orphan",
        order_by="SequenceStep.step_number",
    )


class SequenceStep(Base):
    """Immutable email template at one position of a sequence.

    ``step_number`` is 1-based and unique per sequence.  The delay is
    applied after *this* step is sent to schedule the next one.
    """

    __tablename__ = "sequence_steps"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    sequence_id = Column(
        UUID(as_uuid=True),
        ForeignKey("email_sequences.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_number = Column(Integer, nullable=False)
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    delay_days = Column(Integer, nullable=False, server_default=text("0"))
    delay_hours = Column(Integer, nullable=False, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sequence = relationship("EmailSequence", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("sequence_id", "step_number", name="uq_sequence_step_number"),
        CheckConstraint("step_number >= 1", name="ck_step_number_positive"),
        CheckConstraint(
            "delay_days >= 0 AND delay_hours >= 0", name="ck_step_delay_nonneg"
        ),
    )


class SequenceEnrollment(Base):
    """Cursor of one contact through one sequence.

    Status moves ``active`` → ``completed`` only; ``paused`` rows are
    never picked up by the poller.  ``claimed_until`` is a short lease
    taken by a poll worker so overlapping polls skip the row.
    """

    __tablename__ = "sequence_enrollments"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    sequence_id = Column(
        UUID(as_uuid=True),
        ForeignKey("email_sequences.id", ondelete="CASCADE"),
        nullable=False,
    )
    contact_id = Column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(String(20), nullable=False, server_default="active")
    current_step = Column(Integer, nullable=False, server_default=text("0"))
    next_send_at = Column(DateTime(timezone=True), server_default=func.now())
    claimed_until = Column(DateTime(timezone=True))
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())
    paused_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    contact = relationship("Contact")
    sequence = relationship("EmailSequence")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'paused', 'completed')",
            name="ck_enrollment_status",
        ),
        CheckConstraint("current_step >= 0", name="ck_enrollment_step_nonneg"),
        Index("ix_enrollments_status_next_send", "status", "next_send_at"),
    )

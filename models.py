"""
SQLAlchemy models: evaluation ledger.

One append-only row per evaluation. Column order matches the reporting
layout: timestamp, ticket, agent, scores, improvements, response, ticket
number, feedback.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db import Base

IMPROVEMENT_SEPARATOR = "; "


class LedgerRow(Base):
    __tablename__ = "evaluation_ledger"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    ticket_id: Mapped[str] = mapped_column(String(64), nullable=False)
    agent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    agent_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    tone_empathy_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    clarity_completeness_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    standard_of_english_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    problem_resolution_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    key_improvements: Mapped[str] = mapped_column(Text, default="")
    response_text: Mapped[str] = mapped_column(Text, default="")
    ticket_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    tone_empathy_feedback: Mapped[str] = mapped_column(Text, default="")
    clarity_completeness_feedback: Mapped[str] = mapped_column(Text, default="")
    standard_of_english_feedback: Mapped[str] = mapped_column(Text, default="")
    problem_resolution_feedback: Mapped[str] = mapped_column(Text, default="")

    __table_args__ = (
        Index("ix_ledger_ticket_id", "ticket_id", "id"),
    )

    COLUMNS = (
        "timestamp",
        "ticket_id",
        "agent_id",
        "agent_name",
        "overall_score",
        "tone_empathy_score",
        "clarity_completeness_score",
        "standard_of_english_score",
        "problem_resolution_score",
        "key_improvements",
        "response_text",
        "ticket_number",
        "tone_empathy_feedback",
        "clarity_completeness_feedback",
        "standard_of_english_feedback",
        "problem_resolution_feedback",
    )

    def as_values(self) -> list:
        """The 16 reporting fields in column order."""
        return [getattr(self, name) for name in self.COLUMNS]

    def __repr__(self):
        return (
            f"<LedgerRow id={self.id} ticket_id={self.ticket_id!r} "
            f"overall={self.overall_score} at={self.timestamp}>"
        )

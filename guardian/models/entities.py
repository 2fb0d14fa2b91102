"""SQLModel table definitions. Works on SQLite and PostgreSQL."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


class AnalysisRecord(SQLModel, table=True):
    """
    One persisted verdict. Rows are append-only: never updated or deleted by the application.

    seq is the insertion order used for reverse-chronological reads; id is the public identifier.
    """

    __tablename__ = "analysis_record"

    seq: int | None = Field(default=None, primary_key=True)
    id: str = Field(unique=True, index=True, nullable=False)
    session_id: str = Field(index=True, nullable=False)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    verdict: str = Field(nullable=False)
    score: int = Field(nullable=False)
    tactic: str = ""
    explanation: str = Field(default="", sa_column=Column(Text, nullable=False))
    prompt: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    analysis: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

from __future__ import annotations

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from provenance_engine.core.database import Base


class Job(Base):
  __tablename__ = "jobs"
  __table_args__ = (Index("ix_jobs_status", "status"),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  record_json: Mapped[dict] = mapped_column(JSON, nullable=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)

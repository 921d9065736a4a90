"""Database models for the visual translator service."""

import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visual_translator.db.session import Base


class JobType(str, enum.Enum):
    """Types of jobs supported by the worker."""

    TRANSLATE = "translate"


class JobStatus(str, enum.Enum):
    """Status of a job. Transitions only move forward."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ApiKey(Base):
    """API keys for authentication. Each key acts on behalf of one user."""

    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    key_hash: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    key_prefix: Mapped[str] = mapped_column(String(12), index=True)  # "vtk_" + 8 chars
    name: Mapped[str] = mapped_column(String(100))
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Asset(Base):
    """An uploaded file. Written by the upload service, read-only here."""

    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    filename: Mapped[str] = mapped_column(Text)
    file_type: Mapped[str] = mapped_column(String(255))  # MIME type
    file_size: Mapped[int] = mapped_column(BigInteger)
    storage_path: Mapped[str] = mapped_column(Text, unique=True)
    # "metadata" is reserved on declarative classes
    asset_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    jobs: Mapped[list["Job"]] = relationship("Job", back_populates="asset")


class Job(Base):
    """A request to OCR and translate one asset."""

    __tablename__ = "ai_jobs"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    asset_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("assets.id", ondelete="CASCADE"), index=True
    )
    job_type: Mapped[JobType] = mapped_column(
        Enum(JobType, values_callable=lambda e: [m.value for m in e], name="job_type"),
        default=JobType.TRANSLATE,
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, values_callable=lambda e: [m.value for m in e], name="job_status"),
        default=JobStatus.PENDING,
        index=True,
    )

    # sourceLanguage, targetLanguage, assetType, filename
    config: Mapped[dict] = mapped_column(JSON, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    asset: Mapped["Asset"] = relationship("Asset", back_populates="jobs")
    result: Mapped[Optional["AnalysisResultRecord"]] = relationship(
        "AnalysisResultRecord", back_populates="job", uselist=False, cascade="all, delete-orphan"
    )


class AnalysisResultRecord(Base):
    """The stored output of a completed job. One per job, never updated."""

    __tablename__ = "ai_results"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    job_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("ai_jobs.id", ondelete="CASCADE"), unique=True
    )
    result_type: Mapped[str] = mapped_column(String(50), default="translation")
    result_data: Mapped[dict] = mapped_column(JSON)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    job: Mapped["Job"] = relationship("Job", back_populates="result")

"""Pydantic schemas for job configuration, analysis results and the HTTP API."""

import math
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ============== Language Codes ==============

AUTO_LANGUAGE = "auto"

SUPPORTED_LANGUAGES = frozenset({
    "zh", "zh-tw", "en", "es", "fr", "de", "it", "ja", "ko", "pt", "ru",
    "ar", "hi", "th", "vi", "nl", "sv", "da", "no", "fi", "pl", "cs", "sk",
    "hu", "ro", "bg", "hr", "sr", "sl", "et", "lv", "lt", "el", "tr", "he",
    "fa", "ur", "bn", "ta", "te", "ml", "kn", "gu", "pa", "mr", "ne", "si",
    "my", "km", "lo", "ka", "am", "sw", "zu", "af", "sq", "az", "be", "bs",
    "ca", "cy", "eu", "gl", "is", "ga", "mk", "mt", "mn", "uk", "uz", "kk",
    "ky", "tg", "tk", "hy", "id", "ms", "tl", "haw", "mg", "sm", "to", "fj",
    "mi", "ny", "sn", "yo", "ig", "ha", "so", "rw", "xh", "st", "tn", "ts",
    "ve", "ss", "nr",
})

LANGUAGE_ALIASES = {
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "chinese": "zh",
    "zh-cn": "zh",
    "zh-hant": "zh-tw",
    "nb": "no",
}

SUPPORTED_MIME_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
})


def normalize_language(lang: str | None) -> str | None:
    """Normalize language code to standard format."""
    if lang is None:
        return None
    lang = lang.lower().strip().replace("_", "-")
    return LANGUAGE_ALIASES.get(lang, lang)


def is_supported_language(lang: str | None, allow_auto: bool = False) -> bool:
    if lang == AUTO_LANGUAGE:
        return allow_auto
    return lang in SUPPORTED_LANGUAGES


class CamelModel(BaseModel):
    """Base for payloads exchanged as camelCase JSON; snake_case is accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============== Job Configuration ==============


class JobConfig(CamelModel):
    """The `config` blob of a job, parsed once before processing starts."""

    source_language: str = AUTO_LANGUAGE
    target_language: str
    asset_type: Optional[str] = None
    filename: Optional[str] = None

    @field_validator("source_language", "target_language", mode="before")
    @classmethod
    def normalize_lang(cls, v: str | None) -> str | None:
        return normalize_language(v)

    @field_validator("source_language")
    @classmethod
    def check_source(cls, v: str) -> str:
        if not is_supported_language(v, allow_auto=True):
            raise ValueError(f"Unsupported source language: {v}")
        return v

    @field_validator("target_language")
    @classmethod
    def check_target(cls, v: str) -> str:
        if not is_supported_language(v):
            raise ValueError(f"Unsupported target language: {v}")
        return v

    @model_validator(mode="after")
    def check_pair(self) -> "JobConfig":
        if self.source_language == self.target_language:
            raise ValueError("Source and target languages cannot be the same")
        return self


# ============== Analysis Result ==============


class BoundingBox(BaseModel):
    """Block position in pixels."""

    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class TranslatedBlock(CamelModel):
    id: str = Field(..., min_length=1)
    original_text: str = Field(..., min_length=1)
    translated_text: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0, le=1)
    ocr_confidence: float = Field(..., ge=0, le=1)
    position: BoundingBox


class ResultMetadata(CamelModel):
    ocr_engine: str
    translation_engine: str
    processing_time: int = Field(..., ge=0, description="Elapsed milliseconds")
    pages: int = Field(..., ge=1)
    total_blocks: int = Field(..., ge=0)
    document_type: str
    filename: str


class AnalysisResult(CamelModel):
    """
    Final structured output of a translate job.

    Stored as camelCase JSON in `ai_results.result_data`.
    """

    original_text: str
    translated_text: str
    source_language: str
    target_language: str
    confidence: float = Field(..., ge=0, le=1)
    detected_language: Optional[str] = None
    text_blocks: list[TranslatedBlock] = Field(..., min_length=1)
    metadata: ResultMetadata

    @model_validator(mode="after")
    def check_aggregates(self) -> "AnalysisResult":
        if self.metadata.total_blocks != len(self.text_blocks):
            raise ValueError(
                f"metadata.totalBlocks={self.metadata.total_blocks} but "
                f"{len(self.text_blocks)} text blocks present"
            )
        mean = sum(b.confidence for b in self.text_blocks) / len(self.text_blocks)
        if not math.isclose(self.confidence, mean, rel_tol=1e-9, abs_tol=1e-9):
            raise ValueError(
                f"confidence {self.confidence} is not the mean block confidence {mean}"
            )
        return self


# ============== Job API Schemas ==============


class JobCreateRequest(CamelModel):
    """Request to create a translate job for an uploaded asset."""

    asset_id: UUID = Field(..., description="ID of an asset owned by the caller")
    target_language: str = Field(..., description="Target language code")
    source_language: str = Field(AUTO_LANGUAGE, description="Source language code or 'auto'")
    job_type: Literal["translate"] = "translate"

    @field_validator("source_language", "target_language", mode="before")
    @classmethod
    def normalize_lang(cls, v: str | None) -> str | None:
        return normalize_language(v)


class JobStatusResponse(BaseModel):
    """Job state as seen by the owning user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    asset_id: str
    job_type: str
    status: str
    config: dict
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    jobs: list[JobStatusResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class JobResultResponse(BaseModel):
    """Stored analysis result of a completed job."""

    job_id: str
    result_type: str
    confidence_score: Optional[float] = None
    processing_time_ms: Optional[int] = None
    created_at: datetime
    result: dict


# ============== Direct Translation Schemas ==============


class TranslateRequest(CamelModel):
    """Text to translate without creating a job. Missing fields are reported as 400."""

    text: Optional[str] = None
    target_lang: Optional[str] = None
    source_lang: str = AUTO_LANGUAGE

    @field_validator("source_lang", "target_lang", mode="before")
    @classmethod
    def normalize_lang(cls, v: str | None) -> str | None:
        return normalize_language(v)


class TranslateResponse(CamelModel):
    translated_text: str
    original_text: str
    target_language: str
    source_language: str


# ============== API Key Schemas ==============


class ApiKeyCreate(BaseModel):
    """Request to create a new API key."""

    name: str = Field(..., min_length=1, max_length=100)
    user_id: UUID = Field(..., description="User the key acts on behalf of")
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)


class ApiKeyResponse(BaseModel):
    """Response after creating an API key (only time full key is shown)."""

    id: str
    api_key: str  # Full key, shown only once
    key_prefix: str
    name: str
    user_id: str
    created_at: datetime
    expires_at: Optional[datetime] = None


class ApiKeyInfo(BaseModel):
    """API key info (without full key)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    key_prefix: str
    name: str
    user_id: str
    is_active: bool
    created_at: datetime
    expires_at: Optional[datetime] = None


# ============== Health & Misc Schemas ==============


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    redis: str
    storage: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class LanguageInfo(BaseModel):
    """Information about a supported language."""

    code: str
    source_supported: bool
    target_supported: bool

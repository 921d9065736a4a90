"""Exception types raised by the job processing pipeline."""

from typing import Optional


class VisualTranslatorError(Exception):
    """Base class for all expected errors raised by this package."""


class ConfigurationError(VisualTranslatorError):
    """Invalid worker settings or an invalid job configuration blob."""


class AssetNotFoundError(VisualTranslatorError):
    """The asset referenced by a job does not exist."""


class DownloadError(VisualTranslatorError):
    """The asset's content could not be fetched from object storage."""


class OCRError(VisualTranslatorError):
    """Text extraction failed or produced unusable output."""


class TranslationError(VisualTranslatorError):
    """A translation call failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class TranslationHTTPError(TranslationError):
    """The translation provider answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, detail: str):
        super().__init__(f"{provider} API error: {status_code} {detail}".strip(), provider)
        self.status_code = status_code
        self.detail = detail


class TranslationResponseError(TranslationError):
    """The provider answered 2xx but without a usable translation."""


class TranslationNetworkError(TranslationError):
    """Transport-level failure (connection error, timeout) talking to a provider."""


class ResultValidationError(VisualTranslatorError):
    """The assembled analysis result does not match its schema."""


class PersistenceError(VisualTranslatorError):
    """Writing job state or results to the database failed."""

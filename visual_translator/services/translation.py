"""Translation providers backed by hosted translation / text-generation APIs."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from visual_translator.config import Settings
from visual_translator.exceptions import (
    TranslationError,
    TranslationHTTPError,
    TranslationNetworkError,
    TranslationResponseError,
)
from visual_translator.schemas.schemas import (
    AUTO_LANGUAGE,
    is_supported_language,
    normalize_language,
)
from visual_translator.services.ocr import detect_language

logger = logging.getLogger(__name__)


@dataclass
class TranslationRequest:
    """Translation request data."""

    text: str
    source_language: str
    target_language: str
    context: Optional[str] = None


@dataclass
class TranslationResult:
    """Translation response data."""

    translated_text: str
    confidence: float
    source_language: str
    target_language: str


@dataclass
class _ProviderOutput:
    text: Optional[str]
    detected_language: Optional[str] = None


class Translator:
    """
    Base class for translation providers.

    `translate` validates the language pair, maps transport failures to
    `TranslationError` subclasses and resolves an `auto` source language;
    providers only implement `_translate`.
    """

    name = "base"
    confidence = 0.9

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.translation_timeout_seconds)

    async def translate(self, request: TranslationRequest) -> TranslationResult:
        """
        Translate one piece of text.

        Raises:
            TranslationError: invalid language pair or provider failure
        """
        target = normalize_language(request.target_language)
        source = normalize_language(request.source_language) or AUTO_LANGUAGE

        if not is_supported_language(target):
            raise TranslationError(f"Unsupported target language: {request.target_language}", self.name)
        if not is_supported_language(source, allow_auto=True):
            raise TranslationError(f"Unsupported source language: {request.source_language}", self.name)

        if not request.text.strip():
            return TranslationResult(
                translated_text=request.text,
                confidence=self.confidence,
                source_language=self._resolve_source(source, None, request.text),
                target_language=target,
            )

        logger.debug(f"Translating {len(request.text)} chars {source} -> {target} via {self.name}")

        try:
            output = await self._translate(request.text, source, target, request.context)
        except httpx.TimeoutException as e:
            raise TranslationNetworkError(f"{self.name} request timed out", self.name) from e
        except httpx.RequestError as e:
            raise TranslationNetworkError(f"{self.name} request failed: {e}", self.name) from e

        if not output.text or not output.text.strip():
            raise TranslationResponseError(f"No translation returned from {self.name} API", self.name)

        return TranslationResult(
            translated_text=output.text.strip(),
            confidence=self.confidence,
            source_language=self._resolve_source(source, output.detected_language, request.text),
            target_language=target,
        )

    async def _translate(
        self, text: str, source: str, target: str, context: Optional[str]
    ) -> _ProviderOutput:
        raise NotImplementedError

    def _resolve_source(self, source: str, detected: Optional[str], text: str) -> str:
        if source != AUTO_LANGUAGE:
            return source
        return (
            normalize_language(detected)
            or detect_language(text)
            or self.settings.default_source_language
        )

    async def _post_json(self, url: str, **kwargs) -> dict:
        """POST and decode a JSON body, raising TranslationHTTPError on non-2xx."""
        response = await self._client.post(url, **kwargs)
        if not response.is_success:
            raise TranslationHTTPError(self.name, response.status_code, self._error_detail(response))
        try:
            data = response.json()
        except ValueError as e:
            raise TranslationResponseError(f"{self.name} API returned invalid JSON", self.name) from e
        if not isinstance(data, dict):
            raise TranslationResponseError(f"{self.name} API returned an unexpected payload", self.name)
        return data

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        """Best-effort provider message from an error response."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:500] or response.reason_phrase
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
            if body.get("message"):
                return str(body["message"])
        return response.reason_phrase

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class GeminiTranslator(Translator):
    """Google Gemini `generateContent` used as a translator."""

    name = "gemini"

    def _prompt(self, text: str, source: str, target: str, context: Optional[str]) -> str:
        source_name = "the detected language" if source == AUTO_LANGUAGE else source
        prompt = (
            f"Translate the following text from {source_name} to {target}. "
            "Preserve the formatting and provide only the translation without explanations"
        )
        if context:
            prompt += f" ({context})"
        return f"{prompt}:\n\n{text}"

    async def _translate(
        self, text: str, source: str, target: str, context: Optional[str]
    ) -> _ProviderOutput:
        s = self.settings
        data = await self._post_json(
            f"{s.gemini_api_url}/{s.gemini_model}:generateContent",
            params={"key": s.gemini_api_key},
            json={
                "contents": [{"parts": [{"text": self._prompt(text, source, target, context)}]}],
                "generationConfig": {
                    "temperature": 0.1,
                    "maxOutputTokens": s.gemini_max_output_tokens,
                },
            },
        )
        try:
            translated = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise TranslationResponseError("No translation returned from Gemini API", self.name)
        return _ProviderOutput(text=translated)


class DeepLTranslator(Translator):
    """DeepL REST API v2."""

    name = "deepl"

    # DeepL wants regional variants for some targets
    TARGET_CODES = {"en": "EN-US", "pt": "PT-PT", "zh-tw": "ZH-HANT", "zh": "ZH-HANS"}

    async def _translate(
        self, text: str, source: str, target: str, context: Optional[str]
    ) -> _ProviderOutput:
        form = {"text": text, "target_lang": self.TARGET_CODES.get(target, target.upper())}
        if source != AUTO_LANGUAGE:
            form["source_lang"] = source.split("-")[0].upper()
        if context:
            form["context"] = context

        data = await self._post_json(
            self.settings.deepl_api_url,
            headers={"Authorization": f"DeepL-Auth-Key {self.settings.deepl_api_key}"},
            data=form,
        )
        translations = data.get("translations") or []
        if not translations or not isinstance(translations[0], dict):
            raise TranslationResponseError("No translation returned from DeepL API", self.name)
        first = translations[0]
        detected = first.get("detected_source_language")
        return _ProviderOutput(text=first.get("text"), detected_language=detected and detected.lower())


class GoogleTranslator(Translator):
    """Google Cloud Translation API v2."""

    name = "google"

    async def _translate(
        self, text: str, source: str, target: str, context: Optional[str]
    ) -> _ProviderOutput:
        body = {"q": text, "target": target, "format": "text"}
        if source != AUTO_LANGUAGE:
            body["source"] = source

        data = await self._post_json(
            self.settings.google_translate_api_url,
            params={"key": self.settings.google_translate_api_key},
            json=body,
        )
        try:
            first = data["data"]["translations"][0]
        except (KeyError, IndexError, TypeError):
            raise TranslationResponseError("No translation returned from Google Translate API", self.name)
        return _ProviderOutput(
            text=first.get("translatedText"),
            detected_language=first.get("detectedSourceLanguage"),
        )


class LibreTranslateTranslator(Translator):
    """Self-hostable LibreTranslate."""

    name = "libretranslate"

    async def _translate(
        self, text: str, source: str, target: str, context: Optional[str]
    ) -> _ProviderOutput:
        body = {"q": text, "source": source, "target": target, "format": "text"}
        if self.settings.libretranslate_api_key:
            body["api_key"] = self.settings.libretranslate_api_key

        data = await self._post_json(self.settings.libretranslate_api_url, json=body)
        detected = data.get("detectedLanguage")
        return _ProviderOutput(
            text=data.get("translatedText"),
            detected_language=detected.get("language") if isinstance(detected, dict) else None,
        )


class NoopTranslator(Translator):
    """Pass-through for environments without translation credentials."""

    name = "noop"
    confidence = 0.0

    PREFIX = "[No translation configured - Original text]: "

    async def _translate(
        self, text: str, source: str, target: str, context: Optional[str]
    ) -> _ProviderOutput:
        return _ProviderOutput(text=f"{self.PREFIX}{text}")


PROVIDERS: dict[str, type[Translator]] = {
    "gemini": GeminiTranslator,
    "deepl": DeepLTranslator,
    "google": GoogleTranslator,
    "libretranslate": LibreTranslateTranslator,
    "noop": NoopTranslator,
}


def create_translator(
    settings: Settings, client: Optional[httpx.AsyncClient] = None
) -> Translator:
    """Build the provider selected by `TRANSLATION_PROVIDER`."""
    try:
        provider_cls = PROVIDERS[settings.translation_provider]
    except KeyError:
        raise TranslationError(f"Unknown translation provider: {settings.translation_provider}")
    return provider_cls(settings, client=client)

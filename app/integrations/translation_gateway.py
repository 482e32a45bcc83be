"""
Translation Gateway — Google Cloud Translation v2, DeepL, LLM.

All outbound translation calls go through this class.

Provider selection (first configured wins):
  1. Google   — GOOGLE_TRANSLATE_API_KEY
  2. DeepL    — DEEPL_API_KEY (keys ending in ":fx" use the free endpoint)
  3. LLM      — app.ai.gateway.LLMGateway (fails when no LLM key is set)

A failed Google/DeepL call falls back once to the LLM provider.  That is a
different provider, not a retry; nothing is ever re-sent to the same one.

Every call is a single attempt with a 30 s timeout.  ``translate`` and
``detect_language`` never raise: failures come back as results with
``success=False`` and an ``error`` string so callers choose whether the
failure is fatal.

Testability: pass a mock ``session`` (requests) and/or ``llm`` gateway to
TranslationGateway() instead of letting it create real ones.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass

import requests

from app.core.exceptions import IntegrationError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30

GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"
GOOGLE_DETECT_URL = "https://translation.googleapis.com/language/translate/v2/detect"
DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"

SUPPORTED_LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ru": "Russian",
    "ar": "Arabic",
    "hi": "Hindi",
    "nl": "Dutch",
    "pl": "Polish",
    "tr": "Turkish",
}

# Script ranges checked in order over the first 200 characters
_SCRIPT_PATTERNS = (
    ("ja", re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")),     # Hiragana / Katakana; any kana wins over kanji
    ("zh", re.compile(r"[\u4e00-\u9fff]")),                  # CJK ideographs
    ("ko", re.compile(r"[\uac00-\ud7af\u1100-\u11ff]")),     # Hangul
    ("ar", re.compile(r"[\u0600-\u06ff]")),                  # Arabic
    ("ru", re.compile(r"[\u0400-\u04ff]")),                  # Cyrillic
)
_HEURISTIC_SAMPLE = 200


@dataclass
class TranslationResult:
    success: bool
    target_language: str
    provider: str
    translated_text: str | None = None
    source_language: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DetectionResult:
    success: bool
    detected_language: str | None = None
    confidence: float | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def detect_language_heuristic(text: str) -> DetectionResult:
    """Script-range detection; anything without a matched script is English."""
    sample = text[:_HEURISTIC_SAMPLE]
    for code, pattern in _SCRIPT_PATTERNS:
        if pattern.search(sample):
            return DetectionResult(success=True, detected_language=code, confidence=0.8)
    return DetectionResult(success=True, detected_language="en", confidence=0.5)


# ── Providers ─────────────────────────────────────────────────────────────────
# Provider.translate() returns (translated_text, source_language) or raises
# IntegrationError; the gateway turns that into a TranslationResult.


class GoogleTranslateProvider:
    name = "google"

    def __init__(self, api_key: str, session: requests.Session) -> None:
        self.api_key = api_key
        self.session = session

    def _post(self, url: str, body: dict) -> dict:
        try:
            resp = self.session.post(
                url, params={"key": self.api_key}, json=body, timeout=_DEFAULT_TIMEOUT,
            )
        except requests.Timeout as exc:
            raise IntegrationError(self.name, f"Timeout after {_DEFAULT_TIMEOUT}s") from exc
        except requests.RequestException as exc:
            raise IntegrationError(self.name, str(exc)) from exc
        if resp.status_code >= 400:
            raise IntegrationError(self.name, f"Google API error: {resp.status_code}", resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise IntegrationError(self.name, "Invalid JSON response") from exc

    def translate(self, text: str, target: str, source: str | None = None) -> tuple[str, str | None]:
        body = {"q": text, "target": target, "format": "text"}
        if source:
            body["source"] = source
        data = self._post(GOOGLE_TRANSLATE_URL, body)
        translations = (data.get("data") or {}).get("translations") or []
        first = translations[0] if translations else {}
        translated = first.get("translatedText")
        if not translated:
            raise IntegrationError(self.name, "No translation returned")
        return translated, first.get("detectedSourceLanguage") or source

    def detect(self, text: str) -> DetectionResult:
        data = self._post(GOOGLE_DETECT_URL, {"q": text})
        detections = (data.get("data") or {}).get("detections") or [[]]
        first = detections[0][0] if detections and detections[0] else {}
        return DetectionResult(
            success=True,
            detected_language=first.get("language"),
            confidence=first.get("confidence"),
        )


class DeepLProvider:
    name = "deepl"

    def __init__(self, api_key: str, session: requests.Session) -> None:
        self.api_key = api_key
        self.session = session

    @property
    def url(self) -> str:
        return DEEPL_FREE_URL if self.api_key.endswith(":fx") else DEEPL_PRO_URL

    def translate(self, text: str, target: str, source: str | None = None) -> tuple[str, str | None]:
        form = {
            "auth_key": self.api_key,
            "text": text,
            "target_lang": target.upper(),
        }
        if source:
            form["source_lang"] = source.upper()
        try:
            resp = self.session.post(self.url, data=form, timeout=_DEFAULT_TIMEOUT)
        except requests.Timeout as exc:
            raise IntegrationError(self.name, f"Timeout after {_DEFAULT_TIMEOUT}s") from exc
        except requests.RequestException as exc:
            raise IntegrationError(self.name, str(exc)) from exc
        if resp.status_code >= 400:
            raise IntegrationError(self.name, f"DeepL API error: {resp.status_code}", resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise IntegrationError(self.name, "Invalid JSON response") from exc
        translations = data.get("translations") or []
        first = translations[0] if translations else {}
        translated = first.get("text")
        if not translated:
            raise IntegrationError(self.name, "No translation returned")
        detected = first.get("detected_source_language")
        return translated, detected.lower() if detected else source


class LLMTranslationProvider:
    name = "llm"

    SYSTEM_PROMPT = (
        "You are a professional technical translator for industrial welding and "
        "wear-protection case studies. Translate the user's text into {language}. "
        "Keep product names, standards, units and numbers unchanged. "
        "Return only the translated text."
    )

    def __init__(self, llm=None) -> None:
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            from app.ai.gateway import LLMGateway
            self._llm = LLMGateway()
        return self._llm

    def translate(self, text: str, target: str, source: str | None = None) -> tuple[str, str | None]:
        if not self.llm.has_real_provider:
            raise IntegrationError(self.name, "No translation provider configured")
        language = SUPPORTED_LANGUAGES.get(target, target)
        try:
            result = self.llm.complete(
                self.SYSTEM_PROMPT.format(language=language), text, purpose="translation",
            )
        except Exception as exc:  # SDK errors vary by provider
            raise IntegrationError(self.name, str(exc)) from exc
        translated = (result.get("content") or "").strip()
        if not translated:
            raise IntegrationError(self.name, "Translation failed")
        return translated, source


# ── Gateway ───────────────────────────────────────────────────────────────────


class TranslationGateway:
    """Translation provider router.

    Instantiate once at module level (module-level singleton pattern).

    Usage:
        from app.integrations.translation_gateway import translation_gateway
        result = translation_gateway.translate("Текст", "en")
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        llm=None,
        google_api_key: str | None = None,
        deepl_api_key: str | None = None,
    ) -> None:
        self._session: requests.Session | None = session
        self.google_api_key = (
            google_api_key if google_api_key is not None
            else os.getenv("GOOGLE_TRANSLATE_API_KEY", "")
        )
        self.deepl_api_key = (
            deepl_api_key if deepl_api_key is not None
            else os.getenv("DEEPL_API_KEY", "")
        )
        self.llm_provider = LLMTranslationProvider(llm)

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Provider selection ───────────────────────────────────────────────────

    @property
    def provider_name(self) -> str:
        if self.google_api_key:
            return "google"
        if self.deepl_api_key:
            return "deepl"
        return "llm"

    def _primary(self):
        if self.google_api_key:
            return GoogleTranslateProvider(self.google_api_key, self.session)
        if self.deepl_api_key:
            return DeepLProvider(self.deepl_api_key, self.session)
        return self.llm_provider

    # ── Public API ───────────────────────────────────────────────────────────

    def translate(self, text: str, target: str, source: str | None = None) -> TranslationResult:
        """Translate ``text`` into ``target``; never raises."""
        primary = self._primary()
        if not text or not text.strip():
            return TranslationResult(
                success=False, target_language=target, provider=primary.name,
                error="No text provided",
            )

        try:
            translated, detected = primary.translate(text, target, source)
            return TranslationResult(
                success=True, target_language=target, provider=primary.name,
                translated_text=translated, source_language=detected,
            )
        except IntegrationError as exc:
            if primary is self.llm_provider:
                logger.warning("Translation failed provider=%s: %s", primary.name, exc)
                return TranslationResult(
                    success=False, target_language=target, provider=primary.name,
                    error=str(exc),
                )
            logger.warning(
                "Translation failed provider=%s, falling back to llm: %s", primary.name, exc,
            )

        try:
            translated, detected = self.llm_provider.translate(text, target, source)
        except IntegrationError as exc:
            logger.warning("Fallback translation failed provider=llm: %s", exc)
            return TranslationResult(
                success=False, target_language=target, provider=self.llm_provider.name,
                error=str(exc),
            )
        return TranslationResult(
            success=True, target_language=target, provider=self.llm_provider.name,
            translated_text=translated, source_language=detected,
        )

    def detect_language(self, text: str) -> DetectionResult:
        """Google ``/detect`` when configured, otherwise script heuristics."""
        if not text or not text.strip():
            return DetectionResult(success=False, error="No text provided")

        if self.google_api_key:
            try:
                return GoogleTranslateProvider(self.google_api_key, self.session).detect(text)
            except IntegrationError as exc:
                logger.warning("Language detection failed provider=google: %s", exc)

        return detect_language_heuristic(text)

    def batch_translate(self, texts: list[str], target: str, source: str | None = None) -> list[TranslationResult]:
        return [self.translate(t, target, source) for t in texts]


# Module-level singleton
translation_gateway = TranslationGateway()

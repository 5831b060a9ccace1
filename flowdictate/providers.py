"""Remote speech-to-text and text enhancement providers.

Each provider is described by a small configuration object that knows how to
build the three HTTP requests the application needs (transcription,
enhancement and key validation) and how to read the responses back. The
objects hold no state, so the registry can hand out fresh instances freely.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

import httpx

from .models import AudioAsset

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

AUDIO_FILENAME = "audio.m4a"
AUDIO_CONTENT_TYPE = "audio/m4a"
AUDIO_CONTENT_TYPES = {
    ".m4a": AUDIO_CONTENT_TYPE,
    ".mp4": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
}
ENHANCED_TEXT_FIELD = "enhanced_text"

_ENHANCEMENT_INSTRUCTIONS = (
    "You are a text enhancement assistant. Your task is to improve transcribed speech "
    "while maintaining its original meaning and intent.\n"
    "\n"
    "User's context: {context}\n"
    "\n"
    "Instructions:\n"
    "1. Fix grammar, punctuation, and spelling errors\n"
    "2. Improve clarity and readability\n"
    "3. Maintain the original tone and meaning\n"
)


class Provider(str, Enum):
    OPENAI = "openai"
    GROQ = "groq"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def base_url(self) -> str:
        return _BASE_URLS[self]

    @classmethod
    def parse(cls, value: Union["Provider", str]) -> "Provider":
        if isinstance(value, Provider):
            return value
        text = str(value).strip().lower()
        for provider in cls:
            if text in (provider.value, provider.display_name.lower()):
                return provider
        choices = ", ".join(provider.value for provider in cls)
        raise ValueError(f"Unknown provider '{value}'. Use one of: {choices}.")


_DISPLAY_NAMES = {Provider.OPENAI: "OpenAI", Provider.GROQ: "Groq"}
_BASE_URLS = {Provider.OPENAI: OPENAI_BASE_URL, Provider.GROQ: GROQ_BASE_URL}


class DictationError(RuntimeError):
    """Base class for failures while transcribing or enhancing a recording."""


class MissingCredentialError(DictationError):
    def __init__(self) -> None:
        super().__init__("API key is missing")


class InvalidResponseError(DictationError):
    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        message = "Invalid response from API"
        super().__init__(f"{message}: {detail}" if detail else message)


class ProviderError(DictationError):
    """The provider answered with a non-200 status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"API Error ({status_code}): {_shorten(body)}")


class DecodingError(DictationError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Decoding error: {detail}")


class AudioFileError(DictationError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"File error: {detail}")


class EncodingError(DictationError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Encoding error: {detail}")


class NoContentError(DictationError):
    def __init__(self) -> None:
        super().__init__("No response received from API")


class NoSpeechError(DictationError):
    """The transcription came back empty, so there is nothing to enhance."""

    def __init__(self) -> None:
        super().__init__("No speech detected")


class RequestTimeoutError(DictationError):
    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        if timeout is None:
            super().__init__("Request to API timed out")
        else:
            super().__init__(f"Request to API timed out after {timeout:g}s")


class ProviderConfig(Protocol):
    """How to talk to one provider's transcription and chat-completion endpoints."""

    provider: Provider
    base_url: str
    transcription_model: str
    enhancement_model: str
    validation_model: str

    def transcription_request(self, asset: AudioAsset, api_key: str) -> httpx.Request:
        ...

    def enhancement_request(self, text: str, context: str, api_key: str) -> httpx.Request:
        ...

    def validation_request(self, api_key: str) -> httpx.Request:
        ...

    def parse_transcription_response(self, data: bytes) -> str:
        ...

    def parse_enhancement_response(self, data: bytes) -> str:
        ...

    def parse_validation_response(self, data: bytes) -> bool:
        ...


class _ChatProviderConfig:
    """Request and response handling shared by OpenAI-compatible endpoints."""

    provider: Provider
    base_url: str
    transcription_model: str
    enhancement_model: str
    validation_model: str

    def transcription_request(self, asset: AudioAsset, api_key: str) -> httpx.Request:
        try:
            audio = asset.read_bytes()
        except OSError as exc:
            raise AudioFileError(str(exc)) from exc

        filename, content_type = _audio_part(asset.path)
        return httpx.Request(
            "POST",
            f"{self.base_url}/audio/transcriptions",
            headers={"Authorization": f"Bearer {api_key}"},
            data=dict(self._transcription_fields()),
            files={"file": (filename, audio, content_type)},
        )

    def enhancement_request(self, text: str, context: str, api_key: str) -> httpx.Request:
        return self._chat_request(self._enhancement_payload(text, context), api_key)

    def validation_request(self, api_key: str) -> httpx.Request:
        return self._chat_request(self._validation_payload(), api_key)

    def parse_transcription_response(self, data: bytes) -> str:
        payload = _load_json(data)
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise DecodingError("transcription response has no 'text' field")
        return text

    def parse_enhancement_response(self, data: bytes) -> str:
        return self._message_content(data)

    def parse_validation_response(self, data: bytes) -> bool:
        # Only the status code matters for validation.
        return True

    def _transcription_fields(self) -> List[Tuple[str, str]]:
        return [("model", self.transcription_model)]

    def _enhancement_payload(self, text: str, context: str) -> Dict[str, Any]:
        raise NotImplementedError

    def _validation_payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _chat_request(self, payload: Dict[str, Any], api_key: str) -> httpx.Request:
        try:
            body = json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncodingError(str(exc)) from exc
        return httpx.Request(
            "POST",
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            content=body,
        )

    @staticmethod
    def _message_content(data: bytes) -> str:
        payload = _load_json(data)
        if not isinstance(payload, dict) or not isinstance(payload.get("choices"), list):
            raise DecodingError("chat completion response has no 'choices' list")
        choices = payload["choices"]
        if not choices:
            raise NoContentError()
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise DecodingError("chat completion choice has no 'message' object")
        content = message.get("content")
        if content is None:
            raise NoContentError()
        if not isinstance(content, str):
            raise DecodingError("chat completion message content is not a string")
        return content


@dataclass(frozen=True)
class OpenAIConfig(_ChatProviderConfig):
    provider: Provider = Provider.OPENAI
    base_url: str = OPENAI_BASE_URL
    transcription_model: str = "gpt-4o-transcribe"
    enhancement_model: str = "gpt-5-mini"
    validation_model: str = "gpt-5-nano"

    def parse_enhancement_response(self, data: bytes) -> str:
        content = self._message_content(data)
        # The model is asked for {"enhanced_text": ...}; anything else is
        # passed through as-is.
        try:
            parsed = json.loads(content)
        except ValueError:
            return content
        if isinstance(parsed, dict) and isinstance(parsed.get(ENHANCED_TEXT_FIELD), str):
            return parsed[ENHANCED_TEXT_FIELD]
        return content

    def _enhancement_payload(self, text: str, context: str) -> Dict[str, Any]:
        system_prompt = _ENHANCEMENT_INSTRUCTIONS.format(context=context) + (
            f'4. You must return your response as a JSON object with an "{ENHANCED_TEXT_FIELD}" '
            "field containing the improved text\n"
            "5. Always respond with valid JSON format"
        )
        return {
            "model": self.enhancement_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": f'Please enhance this transcribed text and return as JSON: "{text}"',
                },
            ],
            "response_format": {"type": "json_object"},
        }

    def _validation_payload(self) -> Dict[str, Any]:
        return {
            "model": self.validation_model,
            "messages": [{"role": "user", "content": "hello world"}],
            "response_format": {"type": "text"},
            "verbosity": "medium",
            "reasoning_effort": "medium",
            "store": False,
        }


@dataclass(frozen=True)
class GroqConfig(_ChatProviderConfig):
    provider: Provider = Provider.GROQ
    base_url: str = GROQ_BASE_URL
    transcription_model: str = "whisper-large-v3-turbo"
    enhancement_model: str = "openai/gpt-oss-120b"
    validation_model: str = "openai/gpt-oss-120b"

    def parse_enhancement_response(self, data: bytes) -> str:
        return self._message_content(data).strip()

    def _transcription_fields(self) -> List[Tuple[str, str]]:
        # verbose_json adds segments; only the top-level text is used.
        return [
            ("model", self.transcription_model),
            ("temperature", "0"),
            ("response_format", "verbose_json"),
        ]

    def _enhancement_payload(self, text: str, context: str) -> Dict[str, Any]:
        prompt = _ENHANCEMENT_INSTRUCTIONS.format(context=context) + (
            "4. Return only the enhanced text, no additional formatting or explanation\n"
            "\n"
            f'Transcribed text to enhance: "{text}"'
        )
        return {
            "model": self.enhancement_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 1,
            "max_completion_tokens": 8192,
            "top_p": 1,
            "reasoning_effort": "medium",
        }

    def _validation_payload(self) -> Dict[str, Any]:
        return {
            "model": self.validation_model,
            "messages": [{"role": "user", "content": "hello world"}],
            "temperature": 1,
            "max_completion_tokens": 100,
            "top_p": 1,
            "reasoning_effort": "medium",
        }


_CONFIG_TYPES = {
    Provider.OPENAI: OpenAIConfig,
    Provider.GROQ: GroqConfig,
}


def create_config(provider: Union[Provider, str]) -> ProviderConfig:
    """Return the configuration for ``provider``."""

    return _CONFIG_TYPES[Provider.parse(provider)]()


def _load_json(data: bytes) -> Any:
    try:
        return json.loads(data)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodingError(str(exc)) from exc


def _shorten(text: str, limit: int = 300) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


def _audio_part(path: Path) -> Tuple[str, str]:
    """Filename and content type for the uploaded file part.

    Recordings are AAC in an m4a container; other formats are only seen when a
    file is transcribed from the command line.
    """

    suffix = path.suffix.lower()
    if suffix in AUDIO_CONTENT_TYPES and suffix != ".m4a":
        return f"audio{suffix}", AUDIO_CONTENT_TYPES[suffix]
    return AUDIO_FILENAME, AUDIO_CONTENT_TYPE

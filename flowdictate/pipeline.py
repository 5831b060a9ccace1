"""Transcribe -> enhance -> publish for one recording."""

from __future__ import annotations

import contextlib
import logging
import time
from typing import Callable, Optional

import httpx

from .models import AudioAsset, PipelineResult
from .providers import (
    DecodingError,
    DictationError,
    InvalidResponseError,
    MissingCredentialError,
    NoSpeechError,
    ProviderConfig,
    ProviderError,
    RequestTimeoutError,
)
from .state import AppState

QUOTE_PAIRS = (
    ('"', '"'),
    ("'", "'"),
    ("“", "”"),
    ("‘", "’"),
)

APP_TITLE = "FlowDictate"

Clipboard = Callable[[str], None]
Notifier = Callable[[str, str], None]


def strip_quotes(text: str) -> str:
    """Remove one pair of wrapping quotes that models like to add around their answer."""

    cleaned = text.strip()
    for opening, closing in QUOTE_PAIRS:
        if len(cleaned) > 2 and cleaned.startswith(opening) and cleaned.endswith(closing):
            return cleaned[1:-1].strip()
    return cleaned


class DictationPipeline:
    """Run one recording through the active provider.

    The pipeline owns an ``httpx.Client`` unless one is passed in. Transport
    failures are retried with exponential backoff; HTTP error statuses are
    not, since they point at the request or the key rather than the network.
    """

    def __init__(
        self,
        provider_config: ProviderConfig,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        state: Optional[AppState] = None,
        clipboard: Optional[Clipboard] = None,
        notifier: Optional[Notifier] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = provider_config
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._retry_backoff = retry_backoff
        self._state = state
        self._clipboard = clipboard
        self._notifier = notifier
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "DictationPipeline":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def transcribe(self, asset: AudioAsset, credential: str) -> str:
        if not credential:
            raise MissingCredentialError()
        logging.info(
            "Transcribing %s with %s (%s)",
            asset.path.name,
            self.config.provider.display_name,
            self.config.transcription_model,
        )
        request = self.config.transcription_request(asset, credential)
        response = self._send(request, "Transcription")
        text = self._parse(response, self.config.parse_transcription_response, "transcription")
        logging.info("Transcribed %d characters", len(text))
        return text

    def enhance(self, text: str, context: str, credential: str) -> str:
        if not credential:
            raise MissingCredentialError()
        logging.info(
            "Enhancing text with %s (%s)",
            self.config.provider.display_name,
            self.config.enhancement_model,
        )
        request = self.config.enhancement_request(text, context, credential)
        response = self._send(request, "Enhancement")
        enhanced = self._parse(response, self.config.parse_enhancement_response, "enhancement")
        logging.info("Enhanced text is %d characters", len(enhanced))
        return enhanced

    def process(self, asset: AudioAsset, context_prompt: str, credential: str) -> PipelineResult:
        """Return the enhanced text for ``asset`` or the failure that stopped it."""

        scope = self._state.processing_scope() if self._state is not None else contextlib.nullcontext()
        with scope:
            try:
                if not credential:
                    raise MissingCredentialError()
                transcript = self.transcribe(asset, credential)
                if not transcript.strip():
                    logging.warning("Transcription returned no text")
                    raise NoSpeechError()
                enhanced = self.enhance(transcript, context_prompt, credential)
            except DictationError as exc:
                logging.warning("Dictation failed: %s", exc)
                return PipelineResult(error=exc)
        return PipelineResult(text=strip_quotes(enhanced))

    def run(self, asset: AudioAsset, context_prompt: str, credential: str) -> PipelineResult:
        """Process ``asset``, publish the outcome and delete the recording."""

        try:
            result = self.process(asset, context_prompt, credential)
            self._publish(result)
            return result
        finally:
            try:
                asset.delete()
            except OSError as exc:
                logging.warning("Failed to remove recording %s: %s", asset.path, exc)

    def _publish(self, result: PipelineResult) -> None:
        if not result.ok:
            self._notify(f"{APP_TITLE} Error", result.description)
            return

        text = result.text or ""
        if self._state is not None:
            self._state.last_result = text
        if self._clipboard is not None:
            try:
                self._clipboard(text)
            except Exception as exc:
                logging.exception("Failed to copy result to the clipboard")
                self._notify(f"{APP_TITLE} Error", f"Clipboard error: {exc}")
                return
        self._notify(APP_TITLE, "Text copied to clipboard")

    def _notify(self, title: str, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(title, message)
        except Exception as exc:
            logging.debug("Notification unavailable: %s", exc)

    def _send(self, request: httpx.Request, label: str) -> httpx.Response:
        request.extensions["timeout"] = httpx.Timeout(self._timeout).as_dict()
        attempt = 0
        while True:
            try:
                response = self._client.send(request)
                break
            except httpx.TimeoutException as exc:
                error: DictationError = RequestTimeoutError(self._timeout)
                cause: Exception = exc
            except httpx.TransportError as exc:
                error = InvalidResponseError(str(exc) or type(exc).__name__)
                cause = exc
            if attempt >= self._max_retries:
                raise error from cause
            delay = self._retry_backoff * (2**attempt)
            attempt += 1
            logging.warning(
                "%s request to %s failed (%s); retry %d/%d in %.1fs",
                label,
                self.config.provider.display_name,
                cause,
                attempt,
                self._max_retries,
                delay,
            )
            self._sleep(delay)

        if response.status_code != 200:
            body = response.text or "Unknown error"
            logging.error(
                "%s API error from %s (%d)",
                label,
                self.config.provider.display_name,
                response.status_code,
            )
            raise ProviderError(response.status_code, body)
        return response

    def _parse(self, response: httpx.Response, parser: Callable[[bytes], str], label: str) -> str:
        try:
            return parser(response.content)
        except DecodingError:
            logging.debug("Unparseable %s response: %r", label, response.content[:500])
            raise

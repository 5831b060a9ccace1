"""Lightweight API key checks against a provider."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Set, Tuple, Union

import httpx

from .providers import DictationError, Provider, create_config


class KeyValidationProbe:
    """Send a minimal chat completion to see whether a key is accepted.

    Only the status code matters: 200 means the key works. At most one probe
    per provider and key is in flight; a second request made meanwhile is
    skipped and returns ``None``.
    """

    def __init__(self, client: Optional[httpx.Client] = None, timeout: float = 10.0) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._timeout = timeout
        self._lock = threading.Lock()
        self._in_flight: Set[Tuple[Provider, str]] = set()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def in_flight(self, provider: Union[Provider, str], credential: str) -> bool:
        with self._lock:
            return (Provider.parse(provider), credential) in self._in_flight

    def validate(self, provider: Union[Provider, str], credential: str) -> Optional[bool]:
        provider = Provider.parse(provider)
        if not credential:
            return False

        key = (provider, credential)
        with self._lock:
            if key in self._in_flight:
                logging.debug("%s key validation already in progress", provider.display_name)
                return None
            self._in_flight.add(key)

        try:
            return self._probe(provider, credential)
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def _probe(self, provider: Provider, credential: str) -> bool:
        config = create_config(provider)
        try:
            request = config.validation_request(credential)
            request.extensions["timeout"] = httpx.Timeout(self._timeout).as_dict()
            response = self._client.send(request)
        except (httpx.HTTPError, DictationError) as exc:
            logging.warning("%s key validation failed: %s", provider.display_name, exc)
            return False

        valid = response.status_code == 200 and config.parse_validation_response(response.content)
        if valid:
            logging.info("%s API key accepted", provider.display_name)
        else:
            logging.warning(
                "%s API key rejected (HTTP %d)", provider.display_name, response.status_code
            )
        return valid

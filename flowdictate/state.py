"""Observable application state shared between the menu bar and the pipeline."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from .providers import Provider

Observer = Callable[[str], None]


class AppState:
    """Owns the flags the UI reflects and notifies subscribers when they change.

    Subscribers receive the name of the field that changed and read the new
    value from the state object.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._observers: List[Observer] = []
        self._recording = False
        self._processing_count = 0
        self._last_result = ""
        self._key_valid: Dict[Provider, Optional[bool]] = {}

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    @property
    def recording(self) -> bool:
        return self._recording

    @recording.setter
    def recording(self, value: bool) -> None:
        with self._lock:
            changed = self._recording != value
            self._recording = value
        if changed:
            self._emit("recording")

    @property
    def processing(self) -> bool:
        return self._processing_count > 0

    @contextmanager
    def processing_scope(self) -> Iterator[None]:
        """Hold the processing flag for the duration of the block.

        Overlapping pipelines each take the scope; the flag clears when the
        last one leaves, whichever way it leaves.
        """

        with self._lock:
            self._processing_count += 1
            first = self._processing_count == 1
        if first:
            self._emit("processing")
        try:
            yield
        finally:
            with self._lock:
                self._processing_count -= 1
                last = self._processing_count == 0
            if last:
                self._emit("processing")

    @property
    def last_result(self) -> str:
        return self._last_result

    @last_result.setter
    def last_result(self, value: str) -> None:
        with self._lock:
            self._last_result = value
        self._emit("last_result")

    def key_valid(self, provider: Provider) -> Optional[bool]:
        return self._key_valid.get(provider)

    def set_key_valid(self, provider: Provider, valid: Optional[bool]) -> None:
        with self._lock:
            self._key_valid[provider] = valid
        self._emit("key_valid")

    def _emit(self, name: str) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(name)
            except Exception:
                logging.exception("State observer failed for %s", name)

"""Two-layer response cache.

The session layer holds recent responses for ``session_ttl`` seconds. The durable
layer keeps them for ``durable_ttl`` seconds and is written to a JSON file when a
path is configured. Keys are content hashes, so concurrent writers for the same
text always store the same value.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

from .config import CacheSettings
from .models import AnnotationResponse, RequestKind

logger = logging.getLogger(__name__)

CACHE_VERSION = "v1"

_Entry = Tuple[float, Dict[str, Any]]


def cache_key(text: str, kind: RequestKind, target_language: str) -> str:
    raw = f"{kind.value}:{target_language.strip().lower()}|{text}"
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]
    return f"{CACHE_VERSION}:{digest}"


class AnnotationCache:
    """Content-addressed cache of provider responses, keyed per request kind."""

    def __init__(
        self,
        settings: CacheSettings | None = None,
        path: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or CacheSettings()
        self._path = Path(path) if path else None
        self._clock = clock
        self._session: OrderedDict[str, _Entry] = OrderedDict()
        self._durable: OrderedDict[str, _Entry] = OrderedDict()
        self._dirty = False
        self._last_save = clock()

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(set(self._session) | set(self._durable))

    def get(
        self, text: str, kind: RequestKind, target_language: str
    ) -> AnnotationResponse | None:
        key = cache_key(text, kind, target_language)
        now = self._clock()
        payload = self._lookup(self._session, key, now, self._settings.session_ttl)
        if payload is None:
            payload = self._lookup(self._durable, key, now, self._settings.durable_ttl)
            if payload is not None:
                self._remember(self._session, key, (now, payload))
        if payload is None:
            return None
        try:
            response = AnnotationResponse.from_dict(payload)
        except (TypeError, ValueError, AttributeError):
            logger.warning("Discarding unreadable cache entry %s", key)
            self._session.pop(key, None)
            self._durable.pop(key, None)
            return None
        logger.debug("Cache hit for %s (%s)", key, kind.value)
        return response

    def put(
        self,
        text: str,
        kind: RequestKind,
        target_language: str,
        response: AnnotationResponse,
    ) -> None:
        key = cache_key(text, kind, target_language)
        entry = (self._clock(), response.to_dict())
        self._remember(self._session, key, entry)
        self._remember(self._durable, key, entry)
        self._dirty = True
        self._maybe_save()

    def clean_expired(self) -> int:
        """Drop entries older than their layer's window; return how many were removed."""
        now = self._clock()
        removed = 0
        for layer, ttl in (
            (self._session, self._settings.session_ttl),
            (self._durable, self._settings.durable_ttl),
        ):
            stale = [key for key, (stored, _) in layer.items() if now - stored > ttl]
            for key in stale:
                layer.pop(key, None)
            removed += len(stale)
            if layer is self._durable and stale:
                self._dirty = True
        if removed:
            logger.info("Removed %d expired cache entries", removed)
        return removed

    def load(self) -> int:
        """Read the durable file into the durable layer; return the entries loaded."""
        self._last_save = self._clock()
        if self._path is None or not self._path.exists():
            return 0
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable cache file %s", self._path, exc_info=True)
            return 0
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed cache file %s", self._path)
            return 0
        loaded = 0
        for key, item in data.items():
            if not str(key).startswith(f"{CACHE_VERSION}:"):
                continue
            try:
                stored, payload = item
                stored = float(stored)
            except (TypeError, ValueError):
                continue
            if not isinstance(payload, dict):
                continue
            self._remember(self._durable, key, (stored, payload))
            loaded += 1
        logger.info("Loaded %d cache entries from %s", loaded, self._path)
        return loaded

    def save(self) -> None:
        if self._path is None:
            self._dirty = False
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(dict(self._durable), ensure_ascii=False), encoding="utf-8"
            )
        except OSError:
            logger.warning("Failed to save cache to %s", self._path, exc_info=True)
            return
        self._dirty = False
        self._last_save = self._clock()
        logger.debug("Saved %d cache entries to %s", len(self._durable), self._path)

    def flush(self) -> None:
        if self._dirty:
            self.save()

    def _maybe_save(self) -> None:
        if self._dirty and self._clock() - self._last_save >= self._settings.save_interval:
            self.save()

    def _remember(self, layer: OrderedDict[str, _Entry], key: str, entry: _Entry) -> None:
        layer[key] = entry
        layer.move_to_end(key)
        while len(layer) > self._settings.max_entries:
            layer.popitem(last=False)

    @staticmethod
    def _lookup(
        layer: OrderedDict[str, _Entry], key: str, now: float, ttl: float
    ) -> Dict[str, Any] | None:
        entry = layer.get(key)
        if entry is None:
            return None
        stored, payload = entry
        if now - stored > ttl:
            layer.pop(key, None)
            return None
        layer.move_to_end(key)
        return payload

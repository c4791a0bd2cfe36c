"""
Entitlement Store - durable key-value persistence for the subscription
record and the analytics event log.

Contract:
- ``load()`` never fails. Missing or unreadable data yields the default record.
- ``save()`` writes the whole record as one unit and never raises. The
  returned SaveResult says whether the write landed.
- ``append_event()`` is fire-and-forget. Nothing it does can reach the caller.

The record is a single read-modify-write blob with no version token. Two
processes mutating it concurrently can lose each other's updates (the later
save wins). Moving the counters server-side or adding an ETag is the
upgrade path once more than one writer exists.
"""

import copy
import json
import os
import secrets
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Callable, Protocol

from entitlement.exceptions import StorageQuotaExceeded
from entitlement.models import (
    Subscription,
    AnalyticsEvent,
    EVENT_LOG_CAPACITY,
    format_timestamp,
    utc_now,
)
from utils.logger import logger


SUBSCRIPTION_KEY = "subscription"
EVENTS_KEY = "analytics_events"
COMPANY_KEY = "company"


# ============================================================================
# Backends
# ============================================================================

class KeyValueBackend(Protocol):
    """Raw string storage. Implementations may raise on failure."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryBackend:
    """
    In-process backend.

    ``quota_bytes`` caps the total stored size; a write past it raises
    StorageQuotaExceeded the way a full browser storage area does.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            others = sum(len(v) for k, v in self._data.items() if k != key)
            if others + len(value) > self.quota_bytes:
                raise StorageQuotaExceeded(
                    f"Storage quota exceeded for key '{key}' ({self.quota_bytes} bytes)"
                )
        self._data[key] = value

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileBackend:
    """One JSON file per key inside ``directory``; writes are atomic replaces"""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Sanitize key for filename
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        return self.directory / f"{safe_key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.directory), prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


# ============================================================================
# Store
# ============================================================================

@dataclass
class SaveResult:
    """Outcome of a persistence attempt"""
    ok: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


def generate_event_id(now: datetime) -> str:
    """Millisecond timestamp in hex plus a random suffix; unique within a log"""
    return f"{int(now.timestamp() * 1000):x}{secrets.token_hex(3)}"


class EntitlementStore:
    """
    Owns the persisted subscription record and event log.

    One instance should be the only writer for its backend. Inject a
    MemoryBackend in tests to get an isolated installation.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        clock: Callable[[], datetime] = utc_now,
        event_capacity: int = EVENT_LOG_CAPACITY,
    ):
        self.backend = backend
        self.clock = clock
        self.event_capacity = event_capacity
        # Serializes read-modify-write within this process only
        self._lock = threading.RLock()
        # Last record whose save failed; reads keep seeing it this session
        self._unsaved: Optional[Subscription] = None

    # ---------- raw documents ----------

    def read_document(self, key: str, fallback: Any = None) -> Any:
        """Parse the JSON stored under ``key``; ``fallback`` when absent or unreadable"""
        try:
            raw = self.backend.get(key)
            if not raw:
                return fallback
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"Unreadable data under '{key}', using fallback: {e}")
            return fallback

    def write_document(self, key: str, value: Any) -> SaveResult:
        """Serialize ``value`` to JSON under ``key``. Never raises."""
        try:
            self.backend.set(key, json.dumps(value))
            return SaveResult(ok=True)
        except Exception as e:
            logger.error(f"Storage write failed for key '{key}': {e}")
            return SaveResult(ok=False, error=str(e))

    # ---------- subscription ----------

    def load(self) -> Subscription:
        """Load the subscription record, substituting defaults for missing or corrupt data"""
        if self._unsaved is not None:
            return copy.deepcopy(self._unsaved)

        data = self.read_document(SUBSCRIPTION_KEY)
        if data is None:
            return Subscription.default()

        try:
            return Subscription.from_dict(data)
        except Exception as e:
            logger.warning(f"Corrupt subscription record, using defaults: {e}")
            return Subscription.default()

    def save(self, subscription: Subscription) -> SaveResult:
        """Persist the full record as one unit"""
        with self._lock:
            result = self.write_document(SUBSCRIPTION_KEY, subscription.to_dict())
            self._unsaved = None if result.ok else copy.deepcopy(subscription)
            return result

    def update(self, mutate: Callable[[Subscription], None]) -> Subscription:
        """
        Read-modify-write helper.

        Returns the mutated record even when the save failed; the caller's
        in-memory view stays ahead of storage for the rest of the session.
        """
        with self._lock:
            subscription = self.load()
            mutate(subscription)
            self.save(subscription)
            return subscription

    # ---------- event log ----------

    def append_event(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Append one analytics event, keeping only the newest ``event_capacity``.

        Returns False on any failure; never raises.
        """
        try:
            with self._lock:
                events = self.read_document(EVENTS_KEY, [])
                if not isinstance(events, list):
                    events = []

                now = self.clock()
                event = AnalyticsEvent(
                    id=generate_event_id(now),
                    event=name,
                    timestamp=format_timestamp(now),
                    metadata=metadata,
                )
                events.append(event.to_dict())

                # Keep last N events
                if len(events) > self.event_capacity:
                    del events[:len(events) - self.event_capacity]

                return self.write_document(EVENTS_KEY, events).ok
        except Exception as e:
            logger.error(f"Failed to record event '{name}': {e}")
            return False

    def get_events(self) -> List[AnalyticsEvent]:
        """Read back the event log (diagnostics and tests only)"""
        events = self.read_document(EVENTS_KEY, [])
        if not isinstance(events, list):
            return []

        parsed = []
        for entry in events:
            try:
                parsed.append(AnalyticsEvent.from_dict(entry))
            except Exception:
                continue
        return parsed

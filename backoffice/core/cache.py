from typing import Callable, Dict, Optional
from datetime import datetime, timedelta, timezone
import threading
import logging

from backoffice.schemas.verification import CacheEntry, CacheKey, MatchType

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

class VerificationCache:
    """
    Ephemeral key -> verdict store.

    Entries are only handed out while `now < expires_at`; expired entries are
    dropped lazily on read. The same TTL applies to positive and negative
    verdicts. Writes are last-writer-wins.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], datetime] = utc_now):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.errorless:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None
            return entry

    def put(self, entry: CacheEntry):
        with self._lock:
            self._entries[entry.key] = entry

    def store(
        self,
        key: CacheKey,
        exists: bool,
        match_type: MatchType,
        amount: Optional[float] = None,
        supplier_name_matched: Optional[str] = None,
        invoice_reference: Optional[str] = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            exists=exists,
            match_type=match_type,
            amount=amount,
            supplier_name_matched=supplier_name_matched,
            invoice_reference=invoice_reference,
            expires_at=self._clock() + self.ttl,
        )
        self.put(entry)
        return entry

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

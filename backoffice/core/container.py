from dataclasses import dataclass
from typing import Callable, Optional
from datetime import datetime
import logging
import time

import httpx

from backoffice.core.cache import VerificationCache, utc_now
from backoffice.core.cascade import StatusCascadeEngine
from backoffice.core.config import Settings
from backoffice.core.ledger_client import ExternalLedgerClient, LedgerConnection
from backoffice.core.verification import VerificationService
from backoffice.db.repository import InMemoryRepository, Repository

logger = logging.getLogger(__name__)

@dataclass
class Services:
    repository: Repository
    cache: VerificationCache
    ledger_client: ExternalLedgerClient
    verification: VerificationService
    cascade: StatusCascadeEngine

    def close(self):
        self.ledger_client.close()

def build_services(
    settings: Settings,
    repository: Optional[Repository] = None,
    transport: Optional[httpx.BaseTransport] = None,
    clock: Callable[[], datetime] = utc_now,
    sleep: Callable[[float], None] = time.sleep,
) -> Services:
    """Construct the verification core once per process."""
    repository = repository or InMemoryRepository()
    cache = VerificationCache(ttl_seconds=settings.VERIFICATION_CACHE_TTL_SECONDS, clock=clock)
    ledger_client = ExternalLedgerClient(
        LedgerConnection(
            base_url=settings.LEDGER_BASE_URL,
            api_token=settings.LEDGER_API_TOKEN,
            project_id=settings.LEDGER_PROJECT_ID,
            timeout_seconds=settings.LEDGER_TIMEOUT_SECONDS,
        ),
        transport=transport,
    )
    verification = VerificationService(
        repository,
        cache,
        ledger_client,
        reference_max_length=settings.REFERENCE_MAX_LENGTH,
        batch_delay_seconds=settings.BATCH_VERIFICATION_DELAY_SECONDS,
        sleep=sleep,
        clock=clock,
    )
    cascade = StatusCascadeEngine(repository, clock=clock)

    if not ledger_client.is_configured:
        logger.warning("Ledger connection not configured. Every verification will report 'ledger not configured'.")

    return Services(repository, cache, ledger_client, verification, cascade)

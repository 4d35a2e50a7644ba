"""External ledger (NocoDB) HTTP client.

Issues one equality-filtered read per call against the ledger's REST query
endpoint and classifies every failure as a LedgerError (network, http, parse).
"""

from typing import Optional
from dataclasses import dataclass
import logging

import httpx

from backoffice.core.errors import ConfigurationError, LedgerError, LedgerErrorKind
from backoffice.schemas.ledger import LedgerSearchResult, StoreLedgerConfig

logger = logging.getLogger(__name__)


@dataclass
class LedgerConnection:
    """Deployment-wide ledger connection settings."""
    base_url: str = ""
    api_token: str = ""
    project_id: str = ""
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url.strip() and self.project_id.strip())

    def table_url(self, table_name: str) -> str:
        base = self.base_url.rstrip("/")
        return f"{base}/api/v1/db/data/v1/{self.project_id}/{table_name}"


class ExternalLedgerClient:
    """Synchronous client for the ledger query endpoint.

    Usage:
        client = ExternalLedgerClient(LedgerConnection(base_url, token, project_id))
        result = client.search(store_config, store_config.columns.invoice_column, "FAC-001")
        client.close()
    """

    def __init__(self, connection: LedgerConnection, transport: Optional[httpx.BaseTransport] = None):
        self.connection = connection
        self._client = httpx.Client(
            timeout=httpx.Timeout(connection.timeout_seconds),
            transport=transport,
            headers={
                "xc-token": connection.api_token,
                "Accept": "application/json",
            },
        )

    @property
    def is_configured(self) -> bool:
        return self.connection.is_configured

    def close(self):
        self._client.close()

    def search(self, config: StoreLedgerConfig, column: str, value: str) -> LedgerSearchResult:
        """Look up the first ledger row where `column` equals `value`.

        Args:
            config: Store mapping; `column` must be its invoice or BL column
            column: Column to filter on
            value: Value to match exactly

        Raises:
            ConfigurationError: No ledger connection, or column not mapped for the store
            LedgerError: Network failure/timeout, HTTP error status, or malformed body
        """
        if not self.is_configured:
            raise ConfigurationError("ledger not configured")

        searchable = {config.columns.invoice_column, config.columns.bl_column} - {None}
        if column not in searchable:
            raise ConfigurationError(f"column '{column}' is not mapped for store {config.store_id}")

        url = self.connection.table_url(config.table_name)
        params = {"where": f"({column},eq,{value})", "limit": 1}
        logger.info(f"Ledger query: table={config.table_name} column={column} value={value}")

        try:
            response = self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise LedgerError(LedgerErrorKind.NETWORK, f"ledger request timed out ({e})") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise LedgerError(LedgerErrorKind.NETWORK, f"ledger unreachable ({e})") from e

        if response.status_code >= 400:
            raise LedgerError(
                LedgerErrorKind.HTTP,
                f"HTTP {response.status_code} {response.reason_phrase}".strip(),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LedgerError(LedgerErrorKind.PARSE, "ledger response is not valid JSON") from e

        records = data.get("list") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise LedgerError(LedgerErrorKind.PARSE, "ledger response has no 'list' array")

        logger.info(f"Ledger response: table={config.table_name} column={column} count={len(records)}")
        if not records:
            return LedgerSearchResult(found=False)

        record = records[0]
        if not isinstance(record, dict):
            raise LedgerError(LedgerErrorKind.PARSE, "ledger record is not an object")
        return LedgerSearchResult(found=True, record=record)

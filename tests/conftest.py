from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from backoffice.core.config import Settings
from backoffice.core.container import build_services
from backoffice.db.repository import InMemoryRepository
from backoffice.main import create_app
from backoffice.schemas.ledger import ColumnMap, StoreLedgerConfig
from backoffice.schemas.supplier import Supplier

LEDGER_URL = "https://ledger.example.test"

class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

class FakeLedger:
    """In-process stand-in for the ledger query endpoint, served through httpx.MockTransport."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = rows or []
        self.requests: List[httpx.Request] = []
        self.fail_with: Optional[str] = None

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with == "timeout":
            raise httpx.ReadTimeout("read timed out", request=request)
        if self.fail_with == "http":
            return httpx.Response(503, request=request)
        if self.fail_with == "parse":
            return httpx.Response(200, content=b"<html>maintenance</html>", request=request)

        column, _, value = request.url.params["where"][1:-1].split(",", 2)
        matches = [row for row in self.rows if str(row.get(column)) == value]
        return httpx.Response(200, json={"list": matches[:1], "pageInfo": {"totalRows": len(matches)}})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

def make_settings(**overrides) -> Settings:
    values = dict(
        LEDGER_BASE_URL=LEDGER_URL,
        LEDGER_API_TOKEN="secret-token",
        LEDGER_PROJECT_ID="p_retail",
        BATCH_VERIFICATION_DELAY_SECONDS=0.25,
    )
    values.update(overrides)
    return Settings(**values)

STORE_7 = StoreLedgerConfig(
    store_id=7,
    table_name="invoices",
    columns=ColumnMap(
        invoice_column="invoice_reference",
        bl_column="bl_number",
        amount_column="amount",
        supplier_column="supplier",
    ),
)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def ledger():
    return FakeLedger()

@pytest.fixture
def sleeps():
    return []

@pytest.fixture
def repository():
    repo = InMemoryRepository()
    repo.set_store_ledger_config(STORE_7)
    repo.add_supplier(Supplier(id=1, name="ACME", automatic_reconciliation=True))
    repo.add_supplier(Supplier(id=2, name="Manual Foods", automatic_reconciliation=False))
    return repo

@pytest.fixture
def services(repository, ledger, clock, sleeps):
    built = build_services(
        make_settings(),
        repository=repository,
        transport=ledger.transport(),
        clock=clock,
        sleep=sleeps.append,
    )
    yield built
    built.close()

@pytest.fixture
def client(services):
    return TestClient(create_app(make_settings(), services))

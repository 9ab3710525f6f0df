import sys
import uuid
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure project root on sys.path so 'payout_orchestrator' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from payout_orchestrator.main import app  # type: ignore
from payout_orchestrator.database import Base  # type: ignore
from payout_orchestrator.api import deps  # type: ignore
"""Pytest fixtures, fake collaborators and factories.

All model modules are imported (via payout_orchestrator.models.db) before
Base.metadata.create_all(), so relationship targets exist.
"""
from payout_orchestrator.config import ExecutionConfig
from payout_orchestrator.errors import CollaboratorError
from payout_orchestrator.integrations import MockQuoteProvider, QuoteProvider, TransferExecutor
from payout_orchestrator.models.db import Batch, PayoutItem
from payout_orchestrator.models.enums import BatchStatus, PayoutItemStatus
from payout_orchestrator.models.schemas.policy import Policy
from payout_orchestrator.models.schemas.quotes import QuoteRequest, QuoteResult, TransferRoute
from payout_orchestrator.services.idempotency import generate_idempotency_key
from payout_orchestrator.services.payout_store import PayoutStore
from payout_orchestrator.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

RECIPIENT = "0x" + "11" * 20
EXECUTOR = "0x" + "ab" * 20

# Single shared connection so every session sees the same in-memory database
engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def _fresh_schema():
    """Per-test isolation: empty tables and a closed circuit breaker."""
    Base.metadata.create_all(bind=engine)
    GLOBAL_CIRCUIT_BREAKER.reset()
    yield
    Base.metadata.drop_all(bind=engine)
    GLOBAL_CIRCUIT_BREAKER.reset()


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# ---------- Fake collaborators ----------

class RecordingQuoteProvider(QuoteProvider):
    """Quote provider that records requests and can be told to fail."""

    name = "recording"

    def __init__(self, *, gas_cost_usd: float = 0.5, bridge_fee_usd: float = 0.5, slippage_bps: int = 10):
        self.requests: list[QuoteRequest] = []
        self.fail_with: Exception | None = None
        self.gas_cost_usd = gas_cost_usd
        self.bridge_fee_usd = bridge_fee_usd
        self.slippage_bps = slippage_bps

    async def get_quote(self, request: QuoteRequest) -> QuoteResult:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        output = request.amount - request.amount * self.slippage_bps // 10_000
        return QuoteResult(
            route_id=f"route-{len(self.requests)}",
            estimated_gas_cost_usd=self.gas_cost_usd,
            estimated_bridge_fee_usd=self.bridge_fee_usd,
            estimated_output=str(output),
            slippage_bps=self.slippage_bps,
            execution_time_seconds=30,
            raw={"chainId": request.source_chain_id},
        )

    def to_route(self, quote: QuoteResult) -> TransferRoute:
        return TransferRoute(route_id=quote.route_id, chain_id=int(quote.raw["chainId"]))


class RecordingTransferExecutor(TransferExecutor):
    """Transfer executor that counts submissions instead of touching a chain."""

    def __init__(self, *, tx_hash: str | None = "0xfeed", address: str = EXECUTOR):
        self.routes: list[TransferRoute] = []
        self.tx_hash = tx_hash
        self.address = address
        self.fail_with: Exception | None = None

    def signer_address(self, chain_id: int) -> str:
        return self.address

    async def execute_route(self, route: TransferRoute) -> str | None:
        self.routes.append(route)
        if self.fail_with is not None:
            raise self.fail_with
        return self.tx_hash


class RefusingTransferExecutor(TransferExecutor):
    """Installed for HTTP tests: only mock execution is expected there."""

    def signer_address(self, chain_id: int) -> str:
        raise CollaboratorError("no signer in tests", code="no_signer")

    async def execute_route(self, route: TransferRoute) -> str | None:
        raise CollaboratorError("live transfers disabled in tests", code="disabled")


@pytest.fixture()
def execution_config():
    return ExecutionConfig(
        rpc_urls={8453: "http://rpc.test"},
        executor_address=EXECUTOR,
        max_retries=3,
        mock_delay_seconds=0.0,
    )


@pytest.fixture()
def quote_provider():
    return RecordingQuoteProvider()


@pytest.fixture()
def transfer_executor():
    return RecordingTransferExecutor()


# Override dependencies
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _override_execution_config():
    return ExecutionConfig(mock_delay_seconds=0.0)


app.dependency_overrides[deps.get_db] = _override_get_db
app.dependency_overrides[deps.get_execution_config] = _override_execution_config
app.dependency_overrides[deps.get_quote_provider] = lambda: MockQuoteProvider()
app.dependency_overrides[deps.get_transfer_executor] = lambda: RefusingTransferExecutor()


@pytest.fixture()
def client():
    return TestClient(app)


# ---------- Data factory helpers ----------

@pytest.fixture()
def batch_factory(db_session):
    """Create a batch with items; each dict overrides the item defaults below."""
    def _create(
        items: list[dict] | None = None,
        *,
        status: BatchStatus = BatchStatus.DRAFT,
        platform_id: str = "test-platform",
        policy: Policy | None = None,
    ) -> Batch:
        batch_id = str(uuid.uuid4())
        batch = Batch(
            id=batch_id,
            platform_id=platform_id,
            status=status,
            policy=(policy or Policy.default()).model_dump(),
        )
        payout_items = []
        for index, overrides in enumerate(items if items is not None else [{}]):
            fields = {
                "recipient_address": RECIPIENT,
                "dest_chain_id": 42161,
                "preferred_token": "USDC",
                "source_chain_id": 8453,
                "source_token": "USDC",
                "amount": 100_000_000,  # 100 USDC
                "status": PayoutItemStatus.PLANNED,
                "idempotency_key": generate_idempotency_key(platform_id, batch_id, index),
            }
            fields.update(overrides)
            payout_items.append(PayoutItem(batch_id=batch_id, row_index=index, **fields))
        return PayoutStore(db_session).add_batch(batch, payout_items)
    return _create

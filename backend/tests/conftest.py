import os
import sys
import tempfile
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="payment-service-logs-"))
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_value")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from payment_service import dependencies  # noqa: E402
from payment_service.config import settings  # noqa: E402
from payment_service.logging_utils import setup_logging  # noqa: E402
from payment_service.main import app  # noqa: E402


@pytest.fixture(scope="module")
def anyio_backend():
    # Limit tests to asyncio backend so local runs do not require the Trio extra.
    return "asyncio"


@pytest.fixture
async def async_client(anyio_backend) -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def override_dependencies():
    """Swap the outbound collaborators used by the routes; cleared after the test."""

    def _override(*, bdd=None, mailer=None, gateway=None, context=None):
        if bdd is not None:
            app.dependency_overrides[dependencies.get_bdd_client] = lambda: bdd
        if mailer is not None:
            app.dependency_overrides[dependencies.get_mailer_client] = lambda: mailer
        if gateway is not None:
            app.dependency_overrides[dependencies.get_stripe_gateway] = lambda: gateway
        if context is not None:
            app.dependency_overrides[dependencies.get_reconciliation_context] = lambda: context

    try:
        yield _override
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def log_storage(tmp_path):
    """Point the NDJSON log files and the log endpoints at a fresh directory."""
    previous = settings.storage_dir
    settings.storage_dir = str(tmp_path)
    setup_logging(storage_dir=str(tmp_path))
    try:
        yield tmp_path
    finally:
        settings.storage_dir = previous
        setup_logging(storage_dir=previous)

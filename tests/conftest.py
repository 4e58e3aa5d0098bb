"""Test fixtures and configuration."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from transfer_reconciliation.config import settings
from transfer_reconciliation.services.transfer_scoring import clear_transfer_matching_config_cache

_OVERRIDE_VARS = (
    "TRANSFER_AUTO_CONFIDENCE_FLOOR",
    "TRANSFER_AUTO_MAX_DAYS",
    "TRANSFER_AUTO_TOLERANCE",
)


# --- Matching Config Cleanup ---
@pytest.fixture(autouse=True)
def isolate_matching_config(monkeypatch: pytest.MonkeyPatch):
    """Start every test from the shipped YAML with no environment overrides."""
    for name in _OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings, "transfer_config_path", None)
    clear_transfer_matching_config_cache()
    yield
    clear_transfer_matching_config_cache()


@pytest_asyncio.fixture
async def client():
    from transfer_reconciliation.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client

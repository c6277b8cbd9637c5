"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- Apple verifyReceipt response fixtures loaded from tests/fixtures/apple
- A recording test double for the verifyReceipt endpoint (httpx.MockTransport)
- Verifier instances wired to the test double
"""

import json
import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import httpx
import pytest

# Set environment variables BEFORE importing package modules
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("APPLE_REQUEST_TIMEOUT", "5")

from iap_receipts.services.apple_receipt_verifier import (
    AppleReceiptVerifier,
    AppleReceiptVerifierConfig,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_DOUBLE_URL = "http://apple-test-double.local/verifyReceipt"


def load_fixture(relative_path: str) -> str:
    """Read a fixture file as text."""
    return (FIXTURES_DIR / relative_path).read_text(encoding="utf-8")


# ============================================================================
# Receipt Fixtures
# ============================================================================


@pytest.fixture
def receipt0_body() -> str:
    """Sandbox response with a single subscription transaction."""
    return load_fixture("apple/receipt0_response.json")


@pytest.fixture
def receipt1_body() -> str:
    """Sandbox response with 6 renewals plus an in_app section adding one more."""
    return load_fixture("apple/receipt1_response.json")


@pytest.fixture
def receipt2_body() -> str:
    """Sandbox response with a single non-consumable in_app transaction."""
    return load_fixture("apple/receipt2_response.json")


@pytest.fixture
def receipt2_request() -> str:
    """Base64 receipt data as sent by the device (ends with a newline)."""
    return load_fixture("apple/receipt2_request")


def status_body(status: int, environment: str = "Sandbox") -> str:
    """Minimal verifyReceipt body carrying only a status."""
    return json.dumps({"status": status, "environment": environment})


# ============================================================================
# verifyReceipt Test Double
# ============================================================================


class AppleTestDouble:
    """Records requests and answers with a canned status code and body."""

    def __init__(self, status_code: int = 200, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            text=self.body,
            headers={"Content-Type": "application/json"},
        )

    @property
    def last_json(self) -> dict[str, object]:
        result: dict[str, object] = json.loads(self.requests[-1].content)
        return result


@pytest.fixture
def apple_double() -> AppleTestDouble:
    """verifyReceipt test double with an empty 200 response."""
    return AppleTestDouble()


@pytest.fixture
async def http_client(apple_double: AppleTestDouble) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client routed to the test double."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(apple_double.handler)) as client:
        yield client


@pytest.fixture
def verifier_factory(
    http_client: httpx.AsyncClient,
) -> Callable[..., AppleReceiptVerifier]:
    """Factory for verifiers that send every request to the test double."""

    def _create(**config_kwargs: object) -> AppleReceiptVerifier:
        config = AppleReceiptVerifierConfig(**config_kwargs)  # type: ignore[arg-type]
        return AppleReceiptVerifier(config, http_client=http_client)

    return _create


@pytest.fixture
def verifier(verifier_factory: Callable[..., AppleReceiptVerifier]) -> AppleReceiptVerifier:
    """Verifier pointed at the test double through the endpoint override."""
    return verifier_factory(endpoint_override=TEST_DOUBLE_URL, shared_secret="config-secret")

"""
Apple Receipt Verifier Implementation.

NO DICTIONARIES - All data uses strongly typed models.

Uses the App Store verifyReceipt endpoint to validate receipts produced by
the device.
https://developer.apple.com/documentation/appstorereceipts/verifyreceipt
"""

import time
from dataclasses import dataclass
from types import TracebackType

import httpx
from structlog import get_logger

from iap_receipts.config import Settings
from iap_receipts.exceptions import (
    ReceiptError,
    ReceiptHTTPStatusError,
    ReceiptNetworkError,
    ReceiptTimeoutError,
    VendorStatusError,
)
from iap_receipts.models.apple_receipt import AppleReceiptResponse, parse_receipt_response
from iap_receipts.observability import log_context, metrics
from iap_receipts.services.apple_receipt_status import get_status_error

logger = get_logger(__name__)

# Payloads starting with this prefix carry a canned response body
MOCK_RESPONSE_PREFIX = "mock_response:"

PRODUCTION_VERIFY_URL = "https://buy.itunes.apple.com/verifyReceipt"
SANDBOX_VERIFY_URL = "https://sandbox.itunes.apple.com/verifyReceipt"

_PAYLOAD_PREVIEW_LENGTH = 10
_BODY_PREVIEW_LENGTH = 100


@dataclass(frozen=True)
class AppleReceiptVerifierConfig:
    """Configuration for the verifyReceipt client."""

    shared_secret: str = ""  # Used when verify() is not given one
    endpoint_override: str | None = None  # Sends every request here (test doubles)
    request_timeout: float = 30.0  # seconds
    production_url: str = PRODUCTION_VERIFY_URL
    sandbox_url: str = SANDBOX_VERIFY_URL

    def __post_init__(self) -> None:
        """Validate configuration fields."""
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive: {self.request_timeout}")
        if not self.production_url or not self.sandbox_url:
            raise ValueError("Production and sandbox URLs are required")

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppleReceiptVerifierConfig":
        """Build the config from application settings."""
        return cls(
            shared_secret=settings.apple_shared_secret,
            endpoint_override=settings.apple_verify_url_override or None,
            request_timeout=settings.apple_request_timeout,
            production_url=settings.apple_verify_url_production,
            sandbox_url=settings.apple_verify_url_sandbox,
        )

    def verify_url(self, is_production: bool) -> str:
        """Get the verifyReceipt URL for the requested environment."""
        if self.endpoint_override:
            return self.endpoint_override
        return self.production_url if is_production else self.sandbox_url


def _environment_label(config: AppleReceiptVerifierConfig, is_production: bool) -> str:
    if config.endpoint_override:
        return "override"
    return "production" if is_production else "sandbox"


class AppleReceiptVerifier:
    """
    Apple verifyReceipt client.

    Sends exactly one request per verify() call. Retrying (on 21005, 5xx or an
    environment mismatch) is left to the caller.
    """

    def __init__(
        self,
        config: AppleReceiptVerifierConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the verifier.

        Args:
            config: Endpoint, secret and timeout configuration
            http_client: Client to send requests with; one is created on first
                use and closed by aclose() when not given
        """
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None

        logger.info(
            "apple_receipt_verifier_initialized",
            endpoint_override=config.endpoint_override,
            request_timeout=config.request_timeout,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this verifier created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "AppleReceiptVerifier":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def verify(
        self,
        payload: str,
        shared_secret: str | None = None,
        is_production: bool = True,
    ) -> AppleReceiptResponse:
        """
        Verify a receipt with Apple and decode the response.

        Args:
            payload: Base64 receipt data from the device, or
                "mock_response:" followed by a raw response body
            shared_secret: App shared secret (auto-renewing subscriptions only);
                falls back to the configured secret
            is_production: Send to the production endpoint instead of sandbox

        Returns:
            Decoded response. Its is_success() flag is independent of this
            call succeeding and must be checked separately.

        Raises:
            ReceiptParseError: If the response body cannot be decoded
            ReceiptNetworkError: If the request could not be completed
            ReceiptHTTPStatusError: If Apple answered with a non-2xx status
            VendorStatusError: If the decoded status is a known error code
        """
        # Apple rejects payloads with a trailing newline
        receipt_data = payload.strip()

        if receipt_data.startswith(MOCK_RESPONSE_PREFIX):
            return self._decode_mock_response(receipt_data)

        environment = _environment_label(self.config, is_production)
        url = self.config.verify_url(is_production)
        start = time.perf_counter()

        with log_context(verify_url=url, receipt_preview=receipt_data[:_PAYLOAD_PREVIEW_LENGTH]):
            try:
                receipt = await self._verify_with_apple(url, receipt_data, shared_secret)
            except ReceiptError as exc:
                metrics.record_verification(
                    environment, type(exc).__name__, time.perf_counter() - start
                )
                raise

        metrics.record_verification(environment, "success", time.perf_counter() - start)
        return receipt

    def _decode_mock_response(self, receipt_data: str) -> AppleReceiptResponse:
        """Decode a canned response without contacting Apple."""
        logger.info("apple_receipt_mock_response_used")
        try:
            receipt = parse_receipt_response(receipt_data.removeprefix(MOCK_RESPONSE_PREFIX))
        except ReceiptError as exc:
            metrics.record_verification("mock", type(exc).__name__)
            raise
        metrics.record_verification("mock", "success")
        return receipt

    async def _verify_with_apple(
        self,
        url: str,
        receipt_data: str,
        shared_secret: str | None,
    ) -> AppleReceiptResponse:
        """POST the receipt to Apple and map the response."""
        payload_preview = receipt_data[:_PAYLOAD_PREVIEW_LENGTH]
        request_body = {
            "receipt-data": receipt_data,
            "password": shared_secret if shared_secret is not None else self.config.shared_secret,
        }

        logger.info("apple_receipt_verification_started")

        try:
            response = await self.http_client.post(
                url,
                json=request_body,
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout,
            )
        except httpx.TimeoutException as exc:
            logger.error("apple_receipt_request_timeout", timeout=self.config.request_timeout)
            raise ReceiptTimeoutError(url, self.config.request_timeout) from exc
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            logger.error("apple_receipt_request_failed", error=str(exc))
            raise ReceiptNetworkError(url, str(exc)) from exc

        body = response.text

        if not response.is_success:
            logger.error(
                "apple_receipt_http_error",
                status=response.status_code,
                error=body,
            )
            raise ReceiptHTTPStatusError(response.status_code, body, payload_preview)

        receipt = parse_receipt_response(response.content)

        # 21006 (expired subscription) is not in the table and passes through
        status_error = get_status_error(receipt.status)
        if status_error is not None:
            logger.warning(
                "apple_receipt_vendor_status_error",
                status=receipt.status,
                reason=status_error.message,
                environment_mismatch=status_error.environment_mismatch,
            )
            raise VendorStatusError(
                status=receipt.status,
                reason=status_error.message,
                payload_preview=payload_preview,
                body_preview=body[:_BODY_PREVIEW_LENGTH],
                retryable=status_error.retryable,
                environment_mismatch=status_error.environment_mismatch,
            )

        logger.info(
            "apple_receipt_verified",
            status=receipt.status,
            environment=receipt.environment,
            transaction_count=len(receipt.get_transactions()),
        )

        return receipt

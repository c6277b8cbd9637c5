"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class ReceiptError(Exception):
    """Base exception for all receipt errors."""

    pass


class ReceiptParseError(ReceiptError):
    """Raised when a verifyReceipt response body cannot be decoded."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Receipt parse error: {message}")


class ReceiptVerificationError(ReceiptError):
    """Base exception for failures while verifying a receipt with Apple."""

    pass


class ReceiptNetworkError(ReceiptVerificationError):
    """Raised when the request to Apple could not be sent or completed."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        self.message = message
        super().__init__(f"Request to {url} failed: {message}")


class ReceiptTimeoutError(ReceiptNetworkError):
    """Raised when Apple did not answer within the configured timeout."""

    def __init__(self, url: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(url, f"timed out after {timeout}s")


class ReceiptHTTPStatusError(ReceiptVerificationError):
    """Raised when Apple answers with a non-2xx HTTP status."""

    def __init__(self, status_code: int, body: str, payload_preview: str) -> None:
        self.status_code = status_code
        self.body = body
        self.payload_preview = payload_preview
        super().__init__(
            f"Apple responded with HTTP {status_code}. "
            f"Request payload was: '{payload_preview}', "
            f"Apple's response payload was: '{body}'"
        )


class VendorStatusError(ReceiptVerificationError):
    """Raised when a 2xx response carries a known error status code."""

    def __init__(
        self,
        status: int,
        reason: str,
        payload_preview: str,
        body_preview: str,
        retryable: bool = False,
        environment_mismatch: bool = False,
    ) -> None:
        self.status = status
        self.reason = reason
        self.payload_preview = payload_preview
        self.body_preview = body_preview
        self._retryable = retryable
        self._environment_mismatch = environment_mismatch
        super().__init__(
            f"Receipt rejected with status {status}. "
            f"Request payload: '{payload_preview}', response payload: '{body_preview}'. "
            f"Apple's reason: '{reason}'"
        )

    @property
    def is_environment_mismatch(self) -> bool:
        """True for 21007/21008: resend the receipt to the other environment."""
        return self._environment_mismatch

    @property
    def is_retryable(self) -> bool:
        """True when Apple reported a transient outage (21005)."""
        return self._retryable

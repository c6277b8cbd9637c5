"""
Apple verifyReceipt status codes.

Maps the error statuses returned inside a 2xx verifyReceipt response to a
human-readable cause.
https://developer.apple.com/documentation/appstorereceipts/status
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class AppleReceiptStatus:
    """Known verifyReceipt error status."""

    code: int
    message: str
    retryable: bool = False  # Transient on Apple's side
    environment_mismatch: bool = False  # Resend to the other environment

    def __post_init__(self) -> None:
        """Validate status entry."""
        if self.code < 21000:
            raise ValueError(f"Not a verifyReceipt error status: {self.code}")
        if not self.message:
            raise ValueError("Message required")


# 21006 (expired subscription) is left out: the receipt is valid and the
# transaction history can still be read from it.
APPLE_RECEIPT_STATUS_ERRORS: dict[int, AppleReceiptStatus] = {
    21000: AppleReceiptStatus(
        code=21000,
        message="The App Store could not read the JSON object you provided.",
    ),
    21002: AppleReceiptStatus(
        code=21002,
        message="The data in the receipt-data property was malformed or missing.",
    ),
    21003: AppleReceiptStatus(
        code=21003,
        message="The receipt could not be authenticated.",
    ),
    21004: AppleReceiptStatus(
        code=21004,
        message=(
            "The shared secret you provided does not match the shared secret on file "
            "for your account."
        ),
    ),
    21005: AppleReceiptStatus(
        code=21005,
        message="The receipt server is not currently available.",
        retryable=True,
    ),
    21007: AppleReceiptStatus(
        code=21007,
        message=(
            "This receipt is from the test environment, but it was sent to the production "
            "environment for verification. Send it to the test environment instead."
        ),
        environment_mismatch=True,
    ),
    21008: AppleReceiptStatus(
        code=21008,
        message=(
            "This receipt is from the production environment, but it was sent to the test "
            "environment for verification. Send it to the production environment instead."
        ),
        environment_mismatch=True,
    ),
}


def get_status_error(code: int) -> AppleReceiptStatus | None:
    """
    Look up a verifyReceipt error status.

    Args:
        code: Status from the decoded response

    Returns:
        The matching entry, or None when the status is not a known error
    """
    return APPLE_RECEIPT_STATUS_ERRORS.get(code)

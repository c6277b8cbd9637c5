"""
Apple verifyReceipt response models - Immutable Pydantic models.

NO DICTIONARIES - All data uses strongly typed models.

Apple encodes most numbers as strings (quantities, millisecond timestamps).
The raw strings are kept as-is and decoded by accessors that fall back to a
documented default instead of raising.
https://developer.apple.com/documentation/appstorereceipts/responsebody
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from iap_receipts.exceptions import ReceiptParseError

SANDBOX_ENVIRONMENT = "Sandbox"

# Returned for dates that cannot be decoded (epoch second -1)
INVALID_TIMESTAMP = datetime(1970, 1, 1, tzinfo=UTC) - timedelta(seconds=1)

_MS_PER_SECOND = 1000
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL_INT = re.compile(r"[+-]?[0-9]+")


def parse_int64(value: str) -> int | None:
    """Parse a base-10 signed 64-bit integer, returning None when invalid."""
    # 20 characters covers a sign plus every 64-bit value
    if len(value) > 20 or not _DECIMAL_INT.fullmatch(value):
        return None
    number = int(value)
    if number < _INT64_MIN or number > _INT64_MAX:
        return None
    return number


def parse_timestamp_ms(value: str) -> datetime:
    """Convert a millisecond epoch string to an aware UTC datetime."""
    ms = parse_int64(value)
    if ms is None:
        return INVALID_TIMESTAMP
    # Whole seconds, truncated toward zero
    seconds = abs(ms) // _MS_PER_SECOND
    if ms < 0:
        seconds = -seconds
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return INVALID_TIMESTAMP


class _ReceiptModel(BaseModel):
    """Base for response models: immutable, unknown keys ignored, null means default."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def null_as_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None and info.field_name is not None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v


class AppleReceiptTransaction(_ReceiptModel):
    """One purchase event from `latest_receipt_info` or `receipt.in_app`."""

    raw_quantity: str = Field("", alias="quantity")
    original_purchase_date_ms: str = ""
    expires_date_ms: str = ""
    trial_flag: StrictInt = Field(0, alias="is_trial")

    product_id: str = ""
    transaction_id: str = ""
    original_transaction_id: str = ""  # First transaction in a subscription chain

    def quantity(self) -> int:
        """Number of items purchased; 1 when missing or not a number."""
        value = parse_int64(self.raw_quantity)
        return 1 if value is None else value

    def purchase_date(self) -> datetime:
        return parse_timestamp_ms(self.original_purchase_date_ms)

    def expires_date(self) -> datetime:
        return parse_timestamp_ms(self.expires_date_ms)

    def is_trial(self) -> bool:
        return self.trial_flag == 1


class AppleReceipt(_ReceiptModel):
    """The decoded `receipt` object nested in the response."""

    bundle_id: str = ""
    in_app: tuple[AppleReceiptTransaction, ...] = ()


class AppleReceiptResponse(_ReceiptModel):
    """Top-level verifyReceipt response body."""

    status: StrictInt = 0
    environment: str = ""
    latest_receipt: str = ""  # Base64 receipt with the latest renewal
    latest_receipt_info: tuple[AppleReceiptTransaction, ...] = ()
    receipt: AppleReceipt = Field(default_factory=AppleReceipt)

    def is_success(self) -> bool:
        """
        Check the success flag.

        Only status 1 counts as success here. Apple's own success code is 0,
        which this check deliberately does not accept.
        """
        return self.status == 1

    def is_sandbox(self) -> bool:
        """Check if the receipt was verified by the sandbox environment."""
        return self.environment == SANDBOX_ENVIRONMENT

    def get_transactions(self) -> list[AppleReceiptTransaction]:
        """Return unique transactions across both lists (order unspecified)."""
        return merge_transactions(self.latest_receipt_info, self.receipt.in_app)


def merge_transactions(
    latest_receipt_info: tuple[AppleReceiptTransaction, ...] | list[AppleReceiptTransaction],
    in_app: tuple[AppleReceiptTransaction, ...] | list[AppleReceiptTransaction],
) -> list[AppleReceiptTransaction]:
    """
    Merge the two transaction lists by transaction id.

    `latest_receipt_info` may or may not duplicate the `in_app` section, and
    either list may be missing entries. Entries are applied in order, first
    `latest_receipt_info` then `in_app`, and the last one seen for an id wins.
    Callers must not rely on the order of the result.
    """
    by_id: dict[str, AppleReceiptTransaction] = {}
    for transaction in latest_receipt_info:
        by_id[transaction.transaction_id] = transaction
    for transaction in in_app:
        by_id[transaction.transaction_id] = transaction
    return list(by_id.values())


def parse_receipt_response(raw: bytes | str) -> AppleReceiptResponse:
    """
    Decode a verifyReceipt response body.

    Args:
        raw: JSON response body

    Returns:
        Parsed response; absent fields take their defaults

    Raises:
        ReceiptParseError: If the body is not a JSON object or a field has
            an incompatible type
    """
    try:
        return AppleReceiptResponse.model_validate_json(raw)
    except ValidationError as exc:
        raise ReceiptParseError(str(exc)) from exc

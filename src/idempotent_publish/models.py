"""Core type definitions for idempotent newsletter publishing.

This module provides the value types that flow through the claim/replay
protocol: the validated idempotency key, the stored response snapshot, and
the read-side shapes of newsletter issues and outbox entries.

Examples:
    Parsing a client-supplied key::

        from idempotent_publish.models import IdempotencyKey

        key = IdempotencyKey.parse("3f0c6a0e-4d9b-4a53-8a0a-2f1f3b2f5d7e")
        str(key)  # the raw string, unchanged

    Building a snapshot record::

        snapshot = ResponseSnapshot(
            status_code=303,
            headers_blob=b'[["bG9jYXRpb24=", "L2FkbWluL25ld3NsZXR0ZXI="]]',
            body=b"",
        )
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from idempotent_publish.exceptions import ValidationError

DEFAULT_MAX_KEY_BYTES = 255


class IdempotencyKey(BaseModel):
    """A client-supplied idempotency key.

    The key is opaque: no stripping, no case folding, no other
    normalization. The raw string is the identity.

    Attributes:
        value: The raw key string.

    Examples:
        >>> key = IdempotencyKey.parse("abc")
        >>> str(key)
        'abc'
        >>> IdempotencyKey.parse(" abc ") == key
        False
    """

    value: str = Field(
        ...,
        description="Raw idempotency key supplied by the client",
        min_length=1,
        examples=["3f0c6a0e-4d9b-4a53-8a0a-2f1f3b2f5d7e"],
    )

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, raw: str, max_bytes: int = DEFAULT_MAX_KEY_BYTES) -> "IdempotencyKey":
        """Validate untrusted input and wrap it as a key.

        Args:
            raw: The string received from the client.
            max_bytes: Upper bound on the UTF-8 encoded length.

        Returns:
            The validated key.

        Raises:
            ValidationError: If ``raw`` is empty, is not encodable as UTF-8, or
                is longer than ``max_bytes``.
        """
        if not raw:
            raise ValidationError("Idempotency key cannot be empty", raw_length=0)

        try:
            raw_length = len(raw.encode("utf-8"))
        except UnicodeEncodeError as e:
            raise ValidationError(
                "Idempotency key is not valid UTF-8", raw_length=len(raw)
            ) from e

        if raw_length > max_bytes:
            raise ValidationError(
                f"Idempotency key exceeds maximum length of {max_bytes} bytes",
                raw_length=raw_length,
            )

        return cls(value=raw)

    def __str__(self) -> str:
        return self.value


class ResponseSnapshot(BaseModel):
    """A stored HTTP response, as persisted in the ledger.

    Headers are kept as a single encoded blob so that order and repeated
    names survive storage untouched. See ``idempotent_publish.core.codec``
    for the encoding.

    Attributes:
        status_code: HTTP status code.
        headers_blob: Encoded ordered list of header name/value pairs.
        body: Raw response body.
    """

    status_code: int = Field(
        ...,
        description="HTTP status code",
        ge=100,
        le=599,
        examples=[200, 303, 500],
    )
    headers_blob: bytes = Field(
        ...,
        description="Encoded ordered list of (name, value) header pairs",
    )
    body: bytes = Field(
        default=b"",
        description="Raw response body bytes",
    )

    model_config = {"frozen": True}


class NewsletterIssue(BaseModel):
    """A published newsletter issue."""

    newsletter_issue_id: str
    title: str
    text_content: str
    html_content: str
    published_at: datetime


class OutboxEntry(BaseModel):
    """One pending delivery of an issue to a confirmed subscriber.

    This is the row shape exposed to the external delivery worker.

    Attributes:
        newsletter_issue_id: The issue to deliver.
        subscriber_email: Recipient address captured at enqueue time.
    """

    newsletter_issue_id: str = Field(..., min_length=1)
    subscriber_email: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @field_validator("subscriber_email")
    @classmethod
    def validate_subscriber_email(cls, v: str) -> str:
        """Reject recipient values that cannot be an address.

        Args:
            v: The recipient address.

        Returns:
            The validated address.

        Raises:
            ValueError: If the value has no ``@``.
        """
        if "@" not in v:
            raise ValueError(f"Invalid subscriber email: {v!r}")
        return v

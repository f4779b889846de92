"""Response snapshot codec.

This module converts between the framework-free ``HttpResponse`` value that
the publishing flow produces and the ``ResponseSnapshot`` record stored in
the idempotency ledger.

The replayed response must be byte-identical to the original, so nothing is
filtered or added on the way through:

1. The status code is stored as an integer
2. Headers are stored as an ordered JSON array of base64 ``[name, value]``
   pairs, which keeps repeated names, their order and non-UTF-8 bytes
3. The body is stored as raw bytes

Examples:
    Round trip::

        from idempotent_publish.core.codec import HttpResponse, decode, encode

        response = HttpResponse(
            status=303,
            headers=[(b"location", b"/admin/newsletter"), (b"set-cookie", b"a=1")],
            body=b"",
        )
        assert decode(encode(response)) == response
"""

import base64
import json

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from idempotent_publish.exceptions import PersistenceError
from idempotent_publish.models import ResponseSnapshot

HeaderList = list[tuple[bytes, bytes]]

_header_pairs = TypeAdapter(list[tuple[str, str]])


class HttpResponse:
    """A framework-free HTTP response.

    Attributes:
        status: HTTP status code
        headers: Ordered header name/value byte pairs; names may repeat
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: HeaderList, body: bytes) -> None:
        """Initialize a response.

        Args:
            status: HTTP status code
            headers: Ordered header name/value byte pairs
            body: Response body as bytes
        """
        self.status = status
        self.headers = headers
        self.body = body

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HttpResponse):
            return NotImplemented
        return (
            self.status == other.status
            and list(self.headers) == list(other.headers)
            and self.body == other.body
        )

    def __repr__(self) -> str:
        return (
            f"HttpResponse(status={self.status}, headers={self.headers!r}, "
            f"body={len(self.body)} bytes)"
        )

    def get_header(self, name: bytes) -> bytes | None:
        """Return the first value for a header name (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None


def encode_headers(headers: HeaderList) -> bytes:
    """Encode ordered header pairs into the ledger blob format."""
    pairs = [
        [
            base64.b64encode(bytes(name)).decode("ascii"),
            base64.b64encode(bytes(value)).decode("ascii"),
        ]
        for name, value in headers
    ]
    return json.dumps(pairs, separators=(",", ":")).encode("ascii")


def decode_headers(blob: bytes) -> HeaderList:
    """Decode the ledger blob format back into ordered header pairs.

    Raises:
        PersistenceError: If the blob is not a valid header encoding
    """
    if not blob:
        return []

    try:
        pairs = _header_pairs.validate_json(blob)
        return [
            (base64.b64decode(name, validate=True), base64.b64decode(value, validate=True))
            for name, value in pairs
        ]
    except (PydanticValidationError, ValueError) as e:
        raise PersistenceError(f"Stored response headers are corrupt: {e}", cause=e) from e


def encode(response: HttpResponse) -> ResponseSnapshot:
    """Capture a response as a storable snapshot.

    Args:
        response: The response that is about to be returned to the client

    Returns:
        ResponseSnapshot ready for the ledger
    """
    return ResponseSnapshot(
        status_code=int(response.status),
        headers_blob=encode_headers(response.headers),
        body=bytes(response.body),
    )


def decode(snapshot: ResponseSnapshot) -> HttpResponse:
    """Reconstruct the response captured in a snapshot.

    Args:
        snapshot: A snapshot read from the ledger

    Returns:
        HttpResponse with identical status, header order and body

    Raises:
        PersistenceError: If the stored headers cannot be decoded
    """
    return HttpResponse(
        status=snapshot.status_code,
        headers=decode_headers(snapshot.headers_blob),
        body=snapshot.body,
    )

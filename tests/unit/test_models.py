"""Unit tests for the value types in idempotent_publish.models."""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError as PydanticValidationError

from idempotent_publish.exceptions import ValidationError
from idempotent_publish.models import IdempotencyKey, OutboxEntry, ResponseSnapshot


class TestIdempotencyKeyParse:
    """Tests for IdempotencyKey.parse."""

    def test_accepts_uuid(self) -> None:
        raw = "3f0c6a0e-4d9b-4a53-8a0a-2f1f3b2f5d7e"
        key = IdempotencyKey.parse(raw)

        assert str(key) == raw
        assert key.value == raw

    def test_empty_rejected(self) -> None:
        """Test that an empty key is rejected with zero length recorded."""
        with pytest.raises(ValidationError) as exc_info:
            IdempotencyKey.parse("")

        assert exc_info.value.raw_length == 0
        assert "cannot be empty" in exc_info.value.message

    def test_exactly_max_bytes_accepted(self) -> None:
        key = IdempotencyKey.parse("k" * 255)
        assert len(str(key)) == 255

    def test_one_over_max_bytes_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            IdempotencyKey.parse("k" * 256)

        assert exc_info.value.raw_length == 256
        assert "255 bytes" in exc_info.value.message

    def test_limit_counts_utf8_bytes(self) -> None:
        """Test that the limit applies to encoded bytes, not characters."""
        # "é" is two bytes in UTF-8
        assert str(IdempotencyKey.parse("é" * 5, max_bytes=10)) == "é" * 5

        with pytest.raises(ValidationError) as exc_info:
            IdempotencyKey.parse("é" * 6, max_bytes=10)

        assert exc_info.value.raw_length == 12

    @pytest.mark.parametrize("raw", ["abc\ud800", "\udfff", "key-\ud83d"])
    def test_lone_surrogate_rejected(self, raw: str) -> None:
        """Test that a key with no UTF-8 encoding is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            IdempotencyKey.parse(raw)

        assert exc_info.value.message == "Idempotency key is not valid UTF-8"
        assert exc_info.value.raw_length == len(raw)
        assert isinstance(exc_info.value.__cause__, UnicodeEncodeError)

    def test_custom_limit(self) -> None:
        with pytest.raises(ValidationError):
            IdempotencyKey.parse("abcd", max_bytes=3)

    def test_whitespace_is_not_stripped(self) -> None:
        """Test that keys are opaque: surrounding whitespace is kept."""
        assert str(IdempotencyKey.parse(" abc ")) == " abc "
        assert IdempotencyKey.parse(" abc ") != IdempotencyKey.parse("abc")

    def test_case_is_significant(self) -> None:
        assert IdempotencyKey.parse("ABC") != IdempotencyKey.parse("abc")

    def test_whitespace_only_key_accepted(self) -> None:
        assert str(IdempotencyKey.parse(" ")) == " "

    def test_key_is_frozen(self) -> None:
        key = IdempotencyKey.parse("abc")

        with pytest.raises(PydanticValidationError):
            key.value = "other"  # type: ignore[misc]

    @given(st.text(min_size=1).filter(lambda s: len(s.encode("utf-8")) <= 255))
    def test_valid_keys_round_trip_unchanged(self, raw: str) -> None:
        """Any non-empty key within the limit is kept exactly as given."""
        assert str(IdempotencyKey.parse(raw)) == raw


class TestResponseSnapshot:
    def test_defaults_to_empty_body(self) -> None:
        snapshot = ResponseSnapshot(status_code=204, headers_blob=b"[]")
        assert snapshot.body == b""

    @pytest.mark.parametrize("status", [99, 600])
    def test_status_out_of_range_rejected(self, status: int) -> None:
        with pytest.raises(PydanticValidationError):
            ResponseSnapshot(status_code=status, headers_blob=b"[]")


class TestOutboxEntry:
    def test_valid_entry(self) -> None:
        entry = OutboxEntry(newsletter_issue_id="issue-1", subscriber_email="a@example.com")
        assert entry.subscriber_email == "a@example.com"

    def test_rejects_value_without_at(self) -> None:
        with pytest.raises(PydanticValidationError) as exc_info:
            OutboxEntry(newsletter_issue_id="issue-1", subscriber_email="not-an-email")

        assert "Invalid subscriber email" in str(exc_info.value)

    def test_rejects_empty_issue_id(self) -> None:
        with pytest.raises(PydanticValidationError):
            OutboxEntry(newsletter_issue_id="", subscriber_email="a@example.com")

"""Custom exceptions for idempotent newsletter publishing.

This module defines the exception hierarchy used throughout the package to
signal malformed idempotency keys, claims that could not be obtained in time,
storage failures, and misuse of the claim protocol.

Examples:
    Handling a malformed key at the HTTP boundary::

        from idempotent_publish.exceptions import ValidationError

        try:
            key = IdempotencyKey.parse(form.idempotency_key)
        except ValidationError as e:
            logger.warning("key.rejected", error=e.message)
            return Response(status_code=400)

    Handling a storage error::

        from idempotent_publish.exceptions import PersistenceError

        try:
            outcome = await coordinator.try_processing(caller_id, key)
        except PersistenceError as e:
            logger.error("ledger.failed", error=str(e.cause))
            return Response(status_code=500)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    All exceptions raised by this package inherit from this base class,
    allowing callers to catch every package-specific error with a single
    except clause.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ValidationError(IdempotencyError):
    """The client-supplied idempotency key is malformed.

    Raised before any database interaction when the key is empty or longer
    than the configured byte limit. Surfaced to the client as a 4xx error.

    Attributes:
        message: Human-readable error description.
        raw_length: UTF-8 length in bytes of the rejected key.

    Examples:
        Raising a validation error::

            if not raw:
                raise ValidationError("Idempotency key cannot be empty", raw_length=0)
    """

    def __init__(self, message: str, raw_length: int = 0) -> None:
        """Initialize the validation error.

        Args:
            message: Human-readable error description.
            raw_length: UTF-8 length in bytes of the rejected key.
        """
        super().__init__(message)
        self.raw_length = raw_length


class ClaimConflictTimeout(IdempotencyError):
    """Waiting for a competing transaction on the same key took too long.

    Another request holds the uncommitted claim row for this
    ``(caller_id, idempotency_key)`` and did not commit or roll back within
    the configured bound. Nothing was written; the client may retry.

    Attributes:
        message: Human-readable error description.
        caller_id: Identity that owns the key.
        key: The contended idempotency key.
        waited_seconds: How long the claim attempt waited before giving up.
    """

    def __init__(
        self,
        message: str,
        caller_id: str,
        key: str,
        waited_seconds: float,
    ) -> None:
        """Initialize the timeout error with details.

        Args:
            message: Human-readable error description.
            caller_id: Identity that owns the key.
            key: The contended idempotency key.
            waited_seconds: Seconds spent waiting for the claim.
        """
        super().__init__(message)
        self.caller_id = caller_id
        self.key = key
        self.waited_seconds = waited_seconds


class PersistenceError(IdempotencyError):
    """A ledger, issue or outbox operation against the database failed.

    The enclosing transaction is always rolled back when this is raised,
    which restores a consistent state: no orphaned claim, no orphaned issue,
    no orphaned outbox rows. The original exception is kept for diagnostics
    and must never be shown to the client verbatim.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.

    Examples:
        Wrapping a driver error::

            try:
                await session.execute(statement)
            except SQLAlchemyError as e:
                raise PersistenceError("Failed to insert newsletter issue", cause=e) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the persistence error with details.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.cause = cause


class InvalidClaimError(IdempotencyError):
    """The claim protocol was used incorrectly.

    Raised when ``save_response`` is called with a transaction that never
    obtained ``StartProcessing`` for the given key, or that already saved
    its response. This is a programming error and is not recoverable.
    """

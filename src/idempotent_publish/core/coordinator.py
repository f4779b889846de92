"""Idempotency coordinator: the claim/replay protocol.

The coordinator turns the database's own row locking into the mutex that
serializes requests carrying the same ``(caller_id, idempotency_key)``:

    try_processing:
        open transaction
        INSERT claim row ... ON CONFLICT DO NOTHING
            inserted   -> StartProcessing(transaction), row left uncommitted
            conflicted -> (the insert waited for the holder to finish)
                          snapshot present -> ReturnSavedResponse(snapshot)

    save_response:
        UPDATE claim row with the response snapshot, COMMIT

Because the claim row stays uncommitted until ``save_response`` commits, a
competing insert for the same key blocks inside the database until the
holder commits (the competitor then replays the stored snapshot) or rolls
back (the competitor's insert succeeds and it becomes the owner). No
in-process lock is involved.

Examples:
    Driving the protocol by hand::

        coordinator = IdempotencyCoordinator(sessions, config)

        outcome = await coordinator.try_processing(caller_id, key)
        if isinstance(outcome, ReturnSavedResponse):
            return outcome.response

        transaction = outcome.transaction
        try:
            issue_id = await publish_issue(transaction, title, text, html)
            response = build_response(issue_id)
        except Exception:
            await coordinator.rollback(transaction)
            raise
        return await coordinator.save_response(transaction, caller_id, key, response)

    Or let ``execute`` do the bookkeeping::

        result = await coordinator.execute(caller_id, key, action)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from idempotent_publish.config import PublishConfig
from idempotent_publish.core.codec import HttpResponse, decode, encode
from idempotent_publish.exceptions import (
    ClaimConflictTimeout,
    InvalidClaimError,
    PersistenceError,
)
from idempotent_publish.models import IdempotencyKey
from idempotent_publish.observability.logging import get_logger
from idempotent_publish.observability.metrics import record_claim, record_saved_response
from idempotent_publish.storage import ledger
from idempotent_publish.storage.database import dialect_name, is_lock_timeout

logger = get_logger(__name__)

# session.info slot holding the (caller_id, key) a transaction has claimed
CLAIM_INFO_KEY = "idempotency_claim"


class StartProcessing:
    """The caller now exclusively owns this ``(caller_id, key)``.

    It must perform its writes on ``transaction`` and then either call
    ``save_response`` or ``rollback``.

    Attributes:
        transaction: Session with an open transaction holding the claim row
    """

    def __init__(self, transaction: AsyncSession) -> None:
        self.transaction = transaction


class ReturnSavedResponse:
    """Another execution already completed this ``(caller_id, key)``.

    Attributes:
        response: The stored response, decoded verbatim
    """

    def __init__(self, response: HttpResponse) -> None:
        self.response = response


Outcome = StartProcessing | ReturnSavedResponse


class ProcessingResult:
    """Result of ``IdempotencyCoordinator.execute``.

    Attributes:
        response: The response to send (new or replayed)
        was_replayed: True if the response came from the ledger
    """

    def __init__(self, response: HttpResponse, was_replayed: bool) -> None:
        self.response = response
        self.was_replayed = was_replayed


class IdempotencyCoordinator:
    """Owns the claim/replay protocol and the transaction boundary.

    Attributes:
        sessions: Factory producing one session per logical action
        config: Configuration object
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        config: PublishConfig,
    ) -> None:
        """Initialize the coordinator.

        Args:
            sessions: Session factory bound to the ledger database
            config: Configuration object
        """
        self.sessions = sessions
        self.config = config

    async def try_processing(self, caller_id: str, key: IdempotencyKey) -> Outcome:
        """Claim ``(caller_id, key)`` or fetch the response saved for it.

        Args:
            caller_id: Authenticated caller identity
            key: Validated idempotency key

        Returns:
            StartProcessing with the open transaction, or
            ReturnSavedResponse with the stored response

        Raises:
            ClaimConflictTimeout: If a competing transaction held the key
                for longer than ``claim_timeout_seconds``
            PersistenceError: On any other database failure
        """
        log = logger.bind(caller_id=caller_id, idempotency_key=str(key))
        started = time.monotonic()
        deadline = started + self.config.claim_timeout_seconds
        delay_ms = self.config.claim_retry_initial_ms

        while True:
            session = self.sessions()
            try:
                outcome = await self._claim_once(session, caller_id, key, deadline)
            except SQLAlchemyError as e:
                await self._discard(session)
                now = time.monotonic()

                if not is_lock_timeout(e):
                    record_claim("error", now - started)
                    log.error("claim.failed", error=str(e), error_type=type(e).__name__)
                    raise PersistenceError(
                        f"Failed to claim idempotency key for caller {caller_id}", cause=e
                    ) from e

                if now >= deadline:
                    record_claim("timeout", now - started)
                    log.warning("claim.timeout", waited_seconds=round(now - started, 3))
                    raise ClaimConflictTimeout(
                        message="Timed out waiting for a concurrent request with the same key",
                        caller_id=caller_id,
                        key=str(key),
                        waited_seconds=now - started,
                    ) from e

                # The store reported the conflict instead of blocking on it
                log.debug("claim.waiting_retry", delay_ms=delay_ms)
                await asyncio.sleep(min(delay_ms / 1000.0, deadline - now))
                delay_ms = min(delay_ms * 2, self.config.claim_retry_max_ms)
                continue
            except BaseException:
                await self._discard(session)
                raise

            elapsed = time.monotonic() - started
            if isinstance(outcome, StartProcessing):
                record_claim("start", elapsed)
                log.info("claim.started")
            else:
                record_claim("replay", elapsed)
                log.info("claim.replayed", status_code=outcome.response.status)
            return outcome

    async def _claim_once(
        self,
        session: AsyncSession,
        caller_id: str,
        key: IdempotencyKey,
        deadline: float,
    ) -> Outcome:
        """Run one claim attempt in a fresh transaction."""
        if dialect_name(session) == "postgresql":
            remaining_ms = max(1, int((deadline - time.monotonic()) * 1000))
            await session.execute(text(f"SET LOCAL lock_timeout = '{remaining_ms}ms'"))

        if await ledger.insert_claim(session, caller_id, str(key)):
            session.info[CLAIM_INFO_KEY] = (caller_id, str(key))
            return StartProcessing(session)

        snapshot = await ledger.get_saved_response(session, caller_id, str(key))
        if snapshot is None:
            raise PersistenceError(
                f"Ledger row for caller {caller_id} exists without a saved response"
            )

        response = decode(snapshot)
        await self._discard(session)
        return ReturnSavedResponse(response)

    async def save_response(
        self,
        transaction: AsyncSession,
        caller_id: str,
        key: IdempotencyKey,
        response: HttpResponse,
    ) -> HttpResponse:
        """Store the response on the claim row and commit the transaction.

        Args:
            transaction: The transaction handed out by ``StartProcessing``
            caller_id: Caller identity the claim was made for
            key: Idempotency key the claim was made for
            response: The response to persist and return

        Returns:
            ``response`` unchanged

        Raises:
            InvalidClaimError: If ``transaction`` does not hold an unsaved
                claim for exactly ``(caller_id, key)``
            PersistenceError: If the update or commit fails
        """
        if transaction.info.get(CLAIM_INFO_KEY) != (caller_id, str(key)):
            raise InvalidClaimError(
                "save_response called without a live claim for this caller and key"
            )

        log = logger.bind(caller_id=caller_id, idempotency_key=str(key))
        snapshot = encode(response)

        try:
            updated = await ledger.attach_response(transaction, caller_id, str(key), snapshot)
            if updated != 1:
                raise PersistenceError(
                    f"Expected to update one ledger row, updated {updated}"
                )
            await transaction.commit()
        except SQLAlchemyError as e:
            transaction.info.pop(CLAIM_INFO_KEY, None)
            await self._discard(transaction)
            log.error("response.save_failed", error=str(e), error_type=type(e).__name__)
            raise PersistenceError("Failed to save idempotent response", cause=e) from e
        except BaseException:
            transaction.info.pop(CLAIM_INFO_KEY, None)
            await self._discard(transaction)
            raise

        transaction.info.pop(CLAIM_INFO_KEY, None)
        await transaction.close()

        record_saved_response(response.status)
        log.info("response.saved", status_code=response.status)
        return response

    async def rollback(self, transaction: AsyncSession) -> None:
        """Abandon a claim: roll back its transaction and release the key.

        Safe to call on a transaction that was already finished.
        """
        claim = transaction.info.pop(CLAIM_INFO_KEY, None)
        await self._discard(transaction)
        if claim is not None:
            logger.info("claim.rolled_back", caller_id=claim[0], idempotency_key=claim[1])

    async def execute(
        self,
        caller_id: str,
        key: IdempotencyKey,
        action: Callable[[AsyncSession], Awaitable[HttpResponse]],
    ) -> ProcessingResult:
        """Run ``action`` at most once for ``(caller_id, key)``.

        The action receives the claiming transaction and returns the response
        to store. Any exception from the action rolls the transaction back,
        releasing the key, and is re-raised.

        Args:
            caller_id: Caller identity
            key: Idempotency key
            action: Business logic to run inside the claiming transaction

        Returns:
            ProcessingResult with the response and whether it was replayed
        """
        outcome = await self.try_processing(caller_id, key)
        if isinstance(outcome, ReturnSavedResponse):
            return ProcessingResult(response=outcome.response, was_replayed=True)

        transaction = outcome.transaction
        try:
            response = await action(transaction)
        except BaseException:
            await self.rollback(transaction)
            raise

        saved = await self.save_response(transaction, caller_id, key, response)
        return ProcessingResult(response=saved, was_replayed=False)

    async def _discard(self, session: AsyncSession) -> None:
        """Roll back and close a session, releasing its connection."""
        try:
            await session.rollback()
        except SQLAlchemyError as e:
            # The connection is invalidated on close; the original error is what matters
            logger.warning("session.rollback_failed", error=str(e))
        finally:
            await session.close()

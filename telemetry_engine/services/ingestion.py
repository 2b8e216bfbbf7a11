"""
Ingestion coordinator: dual write of readings to history and current state.

History is the system of record; current state is a derived projection.
For every reading the coordinator:

1. checks structural preconditions (``ValidationRejected``, no writes);
2. appends to history in its own transaction, retrying transient storage
   errors with exponential backoff (``DurabilityFailure`` when exhausted,
   current state untouched);
3. replaces current state in a separate transaction, retried a bounded
   number of times; exhaustion yields a ``DEGRADED`` result, not an error;
4. hands the reading to the current-state hook, which refreshes the
   device's cached state (best effort; hook failures never fail the ingest).

Key invariants:
- Current state is never written from a reading that is not in history.
- A committed history row is never rolled back, including on cancellation.
- Batch items are independent: a failed item never undoes earlier ones.

CHANGELOG:
- 2026-10-17: Contain non-DBAPI storage errors; hook receives the reading (STORY-110)
- 2026-10-13: Treat conflict on a retried append as our own commit when payloads match (STORY-104)
- 2026-10-12: Initial creation (STORY-104)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telemetry_engine.config import Settings
from telemetry_engine.exceptions import DurabilityFailure, ValidationRejected
from telemetry_engine.models import (
    BatchResult,
    IngestResult,
    IngestStatus,
    Reading,
)
from telemetry_engine.services.stores import (
    append_history,
    history_matches,
    upsert_current_state,
)
from telemetry_engine.services.validation import check_reading, normalize_reading

logger = logging.getLogger(__name__)

CurrentStateHook = Callable[[Reading], Awaitable[None]]


def is_transient(exc: BaseException) -> bool:
    """Return True for storage errors worth retrying.

    Timeouts, connection loss (including OS-level errors the driver raises
    unwrapped while connecting) and other operational errors are transient;
    integrity and data errors are not.
    """
    if isinstance(exc, OSError):
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class IngestionCoordinator:
    """Coordinates the history append and current-state replace per reading.

    Args:
        session_factory: Factory for the short-lived sessions each write uses.
        max_attempts: Attempts for the history append.
        current_state_max_attempts: Attempts for the current-state replace.
        backoff_base_s: Base delay of the exponential backoff.
        backoff_max_s: Maximum delay between attempts.
        on_current_state_replaced: Awaitable hook called after a successful
            replace, e.g. refreshing the cached current state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int = 3,
        current_state_max_attempts: int = 3,
        backoff_base_s: float = 0.1,
        backoff_max_s: float = 2.0,
        on_current_state_replaced: CurrentStateHook | None = None,
    ) -> None:
        if max_attempts < 1 or current_state_max_attempts < 1:
            raise ValueError("attempt counts must be >= 1")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._current_state_max_attempts = current_state_max_attempts
        self._backoff_base_s = backoff_base_s
        self._backoff_max_s = backoff_max_s
        self._on_current_state_replaced = on_current_state_replaced

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        on_current_state_replaced: CurrentStateHook | None = None,
    ) -> "IngestionCoordinator":
        """Build a coordinator using the retry settings from *settings*."""
        return cls(
            session_factory,
            max_attempts=settings.INGEST_MAX_ATTEMPTS,
            current_state_max_attempts=settings.CURRENT_STATE_MAX_ATTEMPTS,
            backoff_base_s=settings.RETRY_BACKOFF_BASE_S,
            backoff_max_s=settings.RETRY_BACKOFF_MAX_S,
            on_current_state_replaced=on_current_state_replaced,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, reading: Reading) -> IngestResult:
        """Ingest one reading.

        Args:
            reading: Canonical reading.

        Returns:
            IngestResult: ``ACCEPTED``, ``DUPLICATE`` (same device_id and ts
            already recorded, nothing written) or ``DEGRADED`` (history
            recorded, current state stale until the next reading).

        Raises:
            ValidationRejected: If the reading fails structural checks.
            DurabilityFailure: If the history append could not be committed.
        """
        check_reading(reading)
        extra = {"device_id": reading.device_id, "device_class": reading.device_class.value}

        if not await self._append_history(reading):
            logger.info(
                "Duplicate reading for %s at %s ignored",
                reading.device_id, reading.ts.isoformat(), extra=extra,
            )
            return IngestResult.for_reading(
                reading, IngestStatus.DUPLICATE, "reading already recorded",
            )

        if not await self._replace_current_state(reading):
            logger.warning(
                "Current state for %s left stale after %d attempts",
                reading.device_id, self._current_state_max_attempts, extra=extra,
            )
            return IngestResult.for_reading(
                reading, IngestStatus.DEGRADED, "recorded in history; current state stale",
            )

        if self._on_current_state_replaced is not None:
            try:
                await self._on_current_state_replaced(reading)
            except Exception:
                logger.warning(
                    "Current-state hook failed for %s", reading.device_id,
                    exc_info=True, extra=extra,
                )

        return IngestResult.for_reading(reading, IngestStatus.ACCEPTED)

    async def ingest_batch(
        self, items: Iterable[Reading | Mapping[str, Any]],
    ) -> BatchResult:
        """Ingest an ordered sequence of readings one at a time.

        Raw mappings are normalized first; a malformed item is reported as
        ``REJECTED`` without affecting the others. Items already committed
        stay committed whatever happens to later ones.

        Args:
            items: Readings (or raw payloads), ordered by the caller.

        Returns:
            BatchResult: One IngestResult per item, in input order.
        """
        batch = BatchResult()
        for item in items:
            reading = item if isinstance(item, Reading) else None
            try:
                if reading is None:
                    reading = normalize_reading(item)
                batch.results.append(await self.ingest(reading))
            except ValidationRejected as exc:
                batch.results.append(
                    _failed_result(reading, item, IngestStatus.REJECTED, str(exc))
                )
            except DurabilityFailure as exc:
                batch.results.append(
                    _failed_result(reading, item, IngestStatus.DURABILITY_FAILURE, str(exc))
                )

        logger.info("Batch ingested: %s", batch.counts)
        return batch

    def backoff(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0-based).

        Formula: ``min(base * 2^attempt, max)``.
        """
        return min(self._backoff_base_s * 2**attempt, self._backoff_max_s)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _append_history(self, reading: Reading) -> bool:
        extra = {"device_id": reading.device_id, "device_class": reading.device_class.value}
        last_error: BaseException | None = None

        for attempt in range(self._max_attempts):
            try:
                async with self._session_factory() as session:
                    inserted = await append_history(session, reading)
                    if inserted or attempt == 0:
                        return inserted
                    # An earlier attempt may have committed before failing.
                    return await history_matches(session, reading)
            except Exception as exc:
                if not is_transient(exc):
                    logger.error(
                        "History append for %s failed permanently",
                        reading.device_id, exc_info=True, extra=extra,
                    )
                    raise DurabilityFailure(
                        f"History append failed: {exc}",
                        device_id=reading.device_id,
                        attempts=attempt + 1,
                    ) from exc
                last_error = exc
                logger.warning(
                    "History append for %s failed (attempt %d/%d): %s",
                    reading.device_id, attempt + 1, self._max_attempts, exc,
                    extra=extra,
                )
                if attempt + 1 < self._max_attempts:
                    await asyncio.sleep(self.backoff(attempt))

        raise DurabilityFailure(
            f"History append failed after {self._max_attempts} attempts: {last_error}",
            device_id=reading.device_id,
            attempts=self._max_attempts,
        ) from last_error

    async def _replace_current_state(self, reading: Reading) -> bool:
        extra = {"device_id": reading.device_id, "device_class": reading.device_class.value}

        for attempt in range(self._current_state_max_attempts):
            try:
                async with self._session_factory() as session:
                    replaced = await upsert_current_state(session, reading)
            except Exception as exc:
                logger.warning(
                    "Current state replace for %s failed (attempt %d/%d): %s",
                    reading.device_id, attempt + 1, self._current_state_max_attempts, exc,
                    extra=extra,
                )
                if attempt + 1 < self._current_state_max_attempts:
                    await asyncio.sleep(self.backoff(attempt))
                continue

            if not replaced:
                logger.info(
                    "Kept newer current state for %s; reading at %s is older",
                    reading.device_id, reading.ts.isoformat(), extra=extra,
                )
            return True

        return False


def _failed_result(
    reading: Reading | None,
    item: Reading | Mapping[str, Any],
    status: IngestStatus,
    detail: str,
) -> IngestResult:
    """Build a failure result, salvaging identifiers from a raw payload."""
    if reading is not None:
        return IngestResult.for_reading(reading, status, detail)
    device_id = item.get("device_id") if isinstance(item, Mapping) else None
    return IngestResult(
        device_id=device_id if isinstance(device_id, str) else None,
        status=status,
        detail=detail,
    )

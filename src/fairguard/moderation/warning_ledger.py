"""
Warning ledger: durable per-user warnings with time-based expiry.

Every public operation is one store transaction that first purges expired
records, then applies its mutation and rebuilds the user's cached count from
the surviving records.  Operations on the same user are additionally
linearized with a per-user ``asyncio.Lock`` so no two mutations interleave
their read-count/write-count steps.  Any store failure rolls the whole
transaction back and surfaces as ``LedgerError``; the caller must not assume
a count in that case.

Callers whose decision depends on the count (read, decide, then add) hold the
lock across all three steps through ``user_lock``::

    async with ledger.user_lock(user_id) as held:
        if await held.active_count() >= threshold:
            ...
        await held.add_warning(reason, moderator_id, log_id)

A user's lock only exists while somebody holds or waits for it.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

import aiosqlite

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.warning_repo import WarningRepo
from fairguard.datatypes.moderation_datatypes import WarningRecord
from fairguard.errors import LedgerError
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import Clock, days_to_ms, new_id, now_ms

logger = get_logger("warning_ledger")

# Extra work executed inside the ledger's transaction, before the mutation
TransactionHook = Callable[[aiosqlite.Connection], Awaitable[None]]


@dataclass(slots=True)
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0   # holders plus waiters


class HeldUserLedger:
    """One user's ledger while its lock is held; only valid inside ``user_lock``."""

    def __init__(self, ledger: "WarningLedger", user_id: str) -> None:
        self._ledger = ledger
        self.user_id = user_id

    async def active_count(self) -> int:
        return await self._ledger._active_count(self.user_id)

    async def add_warning(
        self,
        reason: str,
        moderator_id: str,
        log_id: str,
        *,
        within_transaction: Optional[TransactionHook] = None,
    ) -> int:
        return await self._ledger._add(self.user_id, reason, moderator_id, log_id, within_transaction)


class WarningLedger:
    """Add, reduce, count and expire warnings.

    Args:
        db: Open connection manager.
        clock: Millisecond clock; defaults to wall time.
        expiry_days: Lifetime of a new warning.
    """

    def __init__(self, db: ConnectionManager, clock: Clock = now_ms, expiry_days: float = 30) -> None:
        self.db = db
        self.clock = clock
        self.expiry_ms = days_to_ms(expiry_days)
        self._user_locks: Dict[str, _UserLock] = {}

    @asynccontextmanager
    async def user_lock(self, user_id: str) -> AsyncIterator[HeldUserLedger]:
        """Hold ``user_id``'s ledger lock for a multi-step decision.

        Not reentrant: inside the block use the yielded handle, never the
        ledger's own per-user methods.
        """
        entry = self._user_locks.get(user_id)
        if entry is None:
            entry = self._user_locks[user_id] = _UserLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield HeldUserLedger(self, user_id)
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._user_locks[user_id]

    @asynccontextmanager
    async def _ledger_transaction(self, operation: str, user_id: str) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with self.db.transaction() as conn:
                yield conn
        except (sqlite3.Error, RuntimeError) as exc:
            logger.error("[WARNING LEDGER] %s failed for user %s: %s", operation, user_id, exc)
            raise LedgerError(operation, exc) from exc

    async def _purge_expired(self, conn: aiosqlite.Connection, now: int) -> List[str]:
        """Delete expired records and rebuild the count of every affected user."""
        affected = await WarningRepo.delete_expired(conn, now)
        for user_id in affected:
            await WarningRepo.sync_count(conn, user_id, now)
        return affected

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_warning(
        self,
        user_id: str,
        reason: str,
        moderator_id: str,
        log_id: str,
        *,
        within_transaction: Optional[TransactionHook] = None,
    ) -> int:
        """
        Record a warning and return the user's new active count.

        Args:
            user_id: Warned user.
            reason: Why the warning was issued.
            moderator_id: Issuer (a user id, or the bot's id for automatic actions).
            log_id: Moderation log entry this warning originates from.
            within_transaction: Optional coroutine run in the same transaction
                before the insert (used to write the audit log atomically).

        Raises:
            LedgerError: The store failed; nothing was committed.
        """
        async with self.user_lock(user_id):
            return await self._add(user_id, reason, moderator_id, log_id, within_transaction)

    async def _add(
        self,
        user_id: str,
        reason: str,
        moderator_id: str,
        log_id: str,
        within_transaction: Optional[TransactionHook],
    ) -> int:
        async with self._ledger_transaction("add_warning", user_id) as conn:
            now = self.clock()
            await self._purge_expired(conn, now)
            if within_transaction is not None:
                await within_transaction(conn)
            record = WarningRecord(
                id=new_id(),
                user_id=user_id,
                created_at=now,
                expires_at=now + self.expiry_ms,
                reason=reason,
                moderator_id=moderator_id,
                origin_log_id=log_id,
            )
            await WarningRepo.insert_record(conn, record)
            count = await WarningRepo.sync_count(conn, user_id, now)

        logger.info("[WARNING LEDGER] Added warning for user %s (log %s); active=%d", user_id, log_id, count)
        return count

    async def reduce_warning(
        self,
        user_id: str,
        amount: int = 1,
        *,
        within_transaction: Optional[TransactionHook] = None,
    ) -> int:
        """
        Remove up to ``amount`` of the user's oldest active warnings.

        Returns the new active count. The cached count row is removed when it
        reaches zero.

        Raises:
            LedgerError: The store failed (or the hook raised one); nothing was committed.
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")

        async with self.user_lock(user_id):
            async with self._ledger_transaction("reduce_warning", user_id) as conn:
                now = self.clock()
                await self._purge_expired(conn, now)
                if within_transaction is not None:
                    await within_transaction(conn)
                removed = 0
                if amount:
                    oldest = await WarningRepo.oldest_active_ids(conn, user_id, now, amount)
                    removed = await WarningRepo.delete_records(conn, oldest)
                count = await WarningRepo.sync_count(conn, user_id, now)

        logger.info("[WARNING LEDGER] Reduced %d warning(s) for user %s; active=%d", removed, user_id, count)
        return count

    async def cleanup_expired(self) -> int:
        """
        Delete every expired record and rebuild the affected counts.

        Idempotent: a second call with no clock advance changes nothing.
        Returns the number of users whose count was rebuilt.
        """
        async with self._ledger_transaction("cleanup_expired", "*") as conn:
            affected = await self._purge_expired(conn, self.clock())
        if affected:
            logger.info("[WARNING LEDGER] Cleanup rebuilt counts for %d user(s)", len(affected))
        return len(affected)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_active_warning_count(self, user_id: str) -> int:
        """Active count after purging expired records; 0 for unknown users."""
        async with self.user_lock(user_id):
            return await self._active_count(user_id)

    async def _active_count(self, user_id: str) -> int:
        async with self._ledger_transaction("get_active_warning_count", user_id) as conn:
            now = self.clock()
            await self._purge_expired(conn, now)
            return await WarningRepo.count_active(conn, user_id, now)

    async def list_active_warnings(self, user_id: str) -> List[WarningRecord]:
        """Live records for ``user_id``, oldest first."""
        try:
            async with self.db.read() as conn:
                return await WarningRepo.list_active(conn, user_id, self.clock())
        except (sqlite3.Error, RuntimeError) as exc:
            raise LedgerError("list_active_warnings", exc) from exc

    @property
    def tracked_users(self) -> int:
        """Users whose lock is currently held or awaited."""
        return len(self._user_locks)

"""
In-memory black- and graylists backed by the ``banned_words`` table.

Readers always see one complete ``WordListSnapshot``.  ``reload`` builds a
fresh snapshot from the store and swaps the reference in a single assignment,
so a concurrent reader observes either the old lists or the new ones, never a
half-populated mix.  Every mutation writes through to the store, records an
audit entry and reloads before returning.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.banned_word_repo import BannedWordRepo
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.datatypes.moderation_datatypes import BannedWord, ListType, LogType, ModerationLogEntry
from fairguard.datatypes.outcome_datatypes import WordMutationKind, WordMutationOutcome
from fairguard.errors import StorageError
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import Clock, new_id, now_ms
from fairguard.util.validation import validate_word

logger = get_logger("word_lists")

# Seeded into an empty store on first start: informal insults that are only
# punishable in context, so they go through the classifier.
DEFAULT_GRAYLIST: Tuple[str, ...] = (
    "死ね", "シネ", "しね",
    "殺す", "コロス", "ころす",
    "ゴミ", "ごみ",
    "カス", "かす",
    "うざい", "ウザい", "ウザイ",
    "きもい", "キモい", "キモイ",
    "ガイジ",
    "馬鹿", "バカ", "ばか",
    "アホ", "あほ",
    "kill", "noob",
)


@dataclass(slots=True, frozen=True)
class WordListSnapshot:
    """Immutable view of both lists; ``*_order`` keeps store insertion order."""

    blacklist_order: Tuple[str, ...] = ()
    graylist_order: Tuple[str, ...] = ()

    @property
    def blacklist(self) -> FrozenSet[str]:
        return frozenset(self.blacklist_order)

    @property
    def graylist(self) -> FrozenSet[str]:
        return frozenset(self.graylist_order)

    @staticmethod
    def _first_match(words: Tuple[str, ...], text: str) -> Optional[str]:
        lowered = text.lower()
        for word in words:
            if word in lowered:
                return word
        return None

    def match_blacklist(self, text: str) -> Optional[str]:
        return self._first_match(self.blacklist_order, text)

    def match_graylist(self, text: str) -> Optional[str]:
        return self._first_match(self.graylist_order, text)


def _normalized(words: Iterable[str]) -> Tuple[str, ...]:
    """Lowercased and de-duplicated, keeping the first occurrence."""
    return tuple(dict.fromkeys(w.lower() for w in words))


class WordLists:
    """Read-mostly word list cache with write-triggers-full-reload consistency.

    Graylist matches are reported in store insertion order: the earliest added
    word contained in the text is the one cited.
    """

    def __init__(
        self,
        db: ConnectionManager,
        clock: Clock = now_ms,
        default_graylist: Tuple[str, ...] = DEFAULT_GRAYLIST,
    ) -> None:
        self.db = db
        self.clock = clock
        self.default_graylist = default_graylist
        self._snapshot = WordListSnapshot()
        self._reload_lock = asyncio.Lock()
        self._loaded = False

    @property
    def snapshot(self) -> WordListSnapshot:
        return self._snapshot

    async def reload(self) -> WordListSnapshot:
        """Replace the snapshot with the full table.

        The first reload of this instance seeds the default graylist when the
        store is empty; later reloads never re-seed, so an operator can clear
        every list until the next restart.  Stored words are lowercased.
        """
        async with self._reload_lock:
            try:
                async with self.db.transaction() as conn:
                    if not self._loaded and self.default_graylist and await BannedWordRepo.count(conn) == 0:
                        await BannedWordRepo.seed(conn, self.default_graylist, ListType.GRAY, self.clock())
                        logger.info("[WORD LISTS] Seeded %d default graylist words", len(self.default_graylist))
                    words = await BannedWordRepo.list_all(conn)
            except sqlite3.Error as exc:
                logger.error("[WORD LISTS] Reload failed: %s", exc)
                raise StorageError("reload_word_lists", exc) from exc

            snapshot = WordListSnapshot(
                blacklist_order=_normalized(w.word for w in words if w.list_type is ListType.BLACK),
                graylist_order=_normalized(w.word for w in words if w.list_type is ListType.GRAY),
            )
            self._snapshot = snapshot
            self._loaded = True

        logger.debug(
            "[WORD LISTS] Loaded %d blacklist / %d graylist words",
            len(snapshot.blacklist_order),
            len(snapshot.graylist_order),
        )
        return snapshot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_blacklisted(self, text: str) -> Optional[str]:
        """First blacklisted word contained in ``text`` (case-insensitive), or None."""
        return self._snapshot.match_blacklist(text)

    def match_graylist(self, text: str) -> Optional[str]:
        """First graylisted word contained in ``text`` (case-insensitive), or None."""
        return self._snapshot.match_graylist(text)

    def list_words(self, list_type: ListType | str | None = None) -> List[BannedWord]:
        snapshot = self._snapshot
        words: List[BannedWord] = []
        if list_type is None or ListType.parse(list_type) is ListType.BLACK:
            words.extend(BannedWord(w, ListType.BLACK) for w in snapshot.blacklist_order)
        if list_type is None or ListType.parse(list_type) is ListType.GRAY:
            words.extend(BannedWord(w, ListType.GRAY) for w in snapshot.graylist_order)
        return words

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_word(self, word: str, list_type: ListType | str, moderator_id: str) -> WordMutationOutcome:
        """
        Add ``word`` to ``list_type``; a word already on the other list is moved.

        Raises:
            ValidationError: The word is empty, too long or has unsupported characters.
            StorageError: The store failed; nothing was committed.
        """
        normalized = validate_word(word)
        target = ListType.parse(list_type)
        now = self.clock()

        try:
            async with self.db.transaction() as conn:
                existing = await BannedWordRepo.get(conn, normalized)
                if existing is not None and existing.list_type is target:
                    return WordMutationOutcome(WordMutationKind.ALREADY_EXISTS, normalized)
                if existing is None:
                    await BannedWordRepo.insert(conn, normalized, target, now)
                    kind = WordMutationKind.ADDED
                else:
                    await BannedWordRepo.update_list_type(conn, normalized, target)
                    kind = WordMutationKind.MOVED
                log_id = new_id()
                await ModLogRepo.insert(conn, ModerationLogEntry(
                    id=log_id,
                    type=LogType.ADDWORD,
                    user_id=moderator_id,
                    moderator_id=moderator_id,
                    timestamp=now,
                    reason=f"{target}: {normalized}",
                    content=normalized,
                ))
        except sqlite3.Error as exc:
            logger.error("[WORD LISTS] add_word failed for '%s': %s", normalized, exc)
            raise StorageError("add_word", exc) from exc

        logger.info("[WORD LISTS] %s '%s' to %s by %s", kind.value, normalized, target, moderator_id)
        await self.reload()
        return WordMutationOutcome(kind, normalized, log_id)

    async def remove_word(self, word: str, moderator_id: str) -> WordMutationOutcome:
        """Remove ``word`` from whichever list holds it."""
        normalized = validate_word(word)
        now = self.clock()

        try:
            async with self.db.transaction() as conn:
                if not await BannedWordRepo.delete(conn, normalized):
                    return WordMutationOutcome(WordMutationKind.NOT_FOUND, normalized)
                log_id = new_id()
                await ModLogRepo.insert(conn, ModerationLogEntry(
                    id=log_id,
                    type=LogType.REMOVEWORD,
                    user_id=moderator_id,
                    moderator_id=moderator_id,
                    timestamp=now,
                    reason=f"removed: {normalized}",
                    content=normalized,
                ))
        except sqlite3.Error as exc:
            logger.error("[WORD LISTS] remove_word failed for '%s': %s", normalized, exc)
            raise StorageError("remove_word", exc) from exc

        logger.info("[WORD LISTS] Removed '%s' by %s", normalized, moderator_id)
        await self.reload()
        return WordMutationOutcome(WordMutationKind.REMOVED, normalized, log_id)

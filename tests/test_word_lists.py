import asyncio

import pytest

from fairguard.database.repositories.banned_word_repo import BannedWordRepo
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.datatypes.moderation_datatypes import ListType, LogType
from fairguard.datatypes.outcome_datatypes import WordMutationKind
from fairguard.errors import ValidationError
from fairguard.moderation.word_lists import DEFAULT_GRAYLIST, WordLists, WordListSnapshot

from conftest import MODERATOR_ID, START_MS


@pytest.fixture
def word_lists(db, clock) -> WordLists:
    return WordLists(db, clock, default_graylist=("baka", "noob"))


@pytest.mark.asyncio
async def test_reload_seeds_defaults_into_empty_store(word_lists) -> None:
    snapshot = await word_lists.reload()

    assert snapshot.graylist_order == ("baka", "noob")
    assert snapshot.blacklist_order == ()


@pytest.mark.asyncio
async def test_defaults_are_not_reseeded_once_the_store_has_words(db, clock) -> None:
    lists = WordLists(db, clock, default_graylist=("baka",))
    await lists.reload()
    await lists.remove_word("baka", MODERATOR_ID)
    await lists.add_word("spamword", ListType.BLACK, MODERATOR_ID)

    snapshot = await lists.reload()
    assert snapshot.graylist_order == ()
    assert snapshot.blacklist_order == ("spamword",)


def test_default_graylist_has_japanese_and_english_entries() -> None:
    assert "死ね" in DEFAULT_GRAYLIST
    assert "noob" in DEFAULT_GRAYLIST


@pytest.mark.asyncio
async def test_add_word_writes_through_and_logs(word_lists, db) -> None:
    await word_lists.reload()

    outcome = await word_lists.add_word("  BadWord ", "black", MODERATOR_ID)

    assert outcome.kind is WordMutationKind.ADDED
    assert outcome.word == "badword"
    assert word_lists.is_blacklisted("this has a BADWORD in it") == "badword"
    async with db.read() as conn:
        stored = await BannedWordRepo.get(conn, "badword")
        log = await ModLogRepo.get(conn, outcome.log_id)
    assert stored.list_type is ListType.BLACK
    assert log.type is LogType.ADDWORD
    assert log.moderator_id == MODERATOR_ID


@pytest.mark.asyncio
async def test_add_existing_word_on_same_list_is_reported(word_lists) -> None:
    await word_lists.reload()

    outcome = await word_lists.add_word("baka", ListType.GRAY, MODERATOR_ID)

    assert outcome.kind is WordMutationKind.ALREADY_EXISTS
    assert outcome.log_id is None


@pytest.mark.asyncio
async def test_add_word_on_other_list_moves_it(word_lists) -> None:
    await word_lists.reload()

    outcome = await word_lists.add_word("baka", ListType.BLACK, MODERATOR_ID)

    assert outcome.kind is WordMutationKind.MOVED
    assert word_lists.snapshot.blacklist == frozenset({"baka"})
    assert "baka" not in word_lists.snapshot.graylist


@pytest.mark.asyncio
async def test_remove_word(word_lists, db) -> None:
    await word_lists.reload()

    removed = await word_lists.remove_word("noob", MODERATOR_ID)
    missing = await word_lists.remove_word("noob", MODERATOR_ID)

    assert removed.kind is WordMutationKind.REMOVED
    assert missing.kind is WordMutationKind.NOT_FOUND
    assert word_lists.match_graylist("what a noob") is None
    async with db.read() as conn:
        log = await ModLogRepo.get(conn, removed.log_id)
    assert log.type is LogType.REMOVEWORD


@pytest.mark.asyncio
async def test_invalid_words_are_rejected_before_any_write(word_lists) -> None:
    await word_lists.reload()

    with pytest.raises(ValidationError):
        await word_lists.add_word("", ListType.BLACK, MODERATOR_ID)
    with pytest.raises(ValidationError):
        await word_lists.add_word("x" * 101, ListType.BLACK, MODERATOR_ID)
    with pytest.raises(ValidationError):
        await word_lists.add_word("drop;table", ListType.BLACK, MODERATOR_ID)

    assert word_lists.snapshot.blacklist_order == ()


@pytest.mark.asyncio
async def test_graylist_match_follows_insertion_order(word_lists) -> None:
    await word_lists.reload()

    # Both seeded words appear; the earlier-added one is cited
    assert word_lists.match_graylist("noob baka") == "baka"


def test_snapshot_matching_is_case_insensitive_substring() -> None:
    snapshot = WordListSnapshot(blacklist_order=("slur",), graylist_order=("idiot",))

    assert snapshot.match_blacklist("SLURRED speech") == "slur"
    assert snapshot.match_graylist("You IDIOT") == "idiot"
    assert snapshot.match_graylist("hello") is None


@pytest.mark.asyncio
async def test_list_words_filters_by_list(word_lists) -> None:
    await word_lists.reload()
    await word_lists.add_word("spamword", ListType.BLACK, MODERATOR_ID)

    assert [w.word for w in word_lists.list_words("black")] == ["spamword"]
    assert [w.word for w in word_lists.list_words(ListType.GRAY)] == ["baka", "noob"]
    assert len(word_lists.list_words()) == 3


@pytest.mark.asyncio
async def test_defaults_come_back_for_a_new_instance_over_an_empty_store(db, clock) -> None:
    lists = WordLists(db, clock, default_graylist=("baka",))
    await lists.reload()
    await lists.remove_word("baka", MODERATOR_ID)

    restarted = WordLists(db, clock, default_graylist=("baka",))

    assert (await restarted.reload()).graylist_order == ("baka",)


@pytest.mark.asyncio
async def test_words_edited_into_the_store_are_matched_case_insensitively(word_lists, db) -> None:
    async with db.transaction() as conn:
        await BannedWordRepo.insert(conn, "ShoutWord", ListType.BLACK, START_MS)
        await BannedWordRepo.insert(conn, "SHOUTWORD", ListType.BLACK, START_MS)

    await word_lists.reload()

    assert word_lists.snapshot.blacklist_order == ("shoutword",)
    assert word_lists.is_blacklisted("why the shoutword") == "shoutword"


@pytest.mark.asyncio
async def test_readers_during_reload_see_the_old_or_the_new_lists(db, clock) -> None:
    old = ("alpha", "beta", "gamma")
    new = ("delta", "epsilon")
    lists = WordLists(db, clock, default_graylist=())
    async with db.transaction() as conn:
        for word in old:
            await BannedWordRepo.insert(conn, word, ListType.BLACK, START_MS)
    await lists.reload()

    async with db.transaction() as conn:
        for word in old:
            await BannedWordRepo.delete(conn, word)
        for word in new:
            await BannedWordRepo.insert(conn, word, ListType.BLACK, START_MS)

    seen = []
    done = asyncio.Event()

    async def reader() -> None:
        while not done.is_set():
            snapshot = lists.snapshot
            seen.append((snapshot.blacklist_order, snapshot.match_blacklist("alpha delta")))
            await asyncio.sleep(0)

    async def reload_then_stop() -> None:
        await lists.reload()
        done.set()

    await asyncio.gather(*(reader() for _ in range(5)), reload_then_stop())

    assert seen
    assert {order for order, _ in seen} <= {old, new}
    assert all(match == ("alpha" if order == old else "delta") for order, match in seen)
    assert lists.snapshot.blacklist_order == new

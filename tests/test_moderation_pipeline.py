import asyncio

import pytest
import pytest_asyncio

from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.database.repositories.trust_score_repo import TrustScoreRepo
from fairguard.datatypes.moderation_datatypes import ListType, LogType
from fairguard.datatypes.outcome_datatypes import OutcomeKind
from fairguard.errors import ClassifierBackendError, MessageAlreadyDeleted, PlatformError, PlatformPermissionError
from fairguard.moderation.moderation_pipeline import BLACKLIST_REASON
from fairguard.moderation.punishment import SYSTEM_MODERATOR

from conftest import ADMIN_ID, MODERATOR_ID, USER_ID, make_message

UNSAFE = '{"verdict": "UNSAFE", "reason": "direct insult"}'


async def _prime_warnings(engine, count: int) -> None:
    for i in range(count):
        await engine.ledger.add_warning(USER_ID, f"earlier {i}", SYSTEM_MODERATOR, f"earlier-{i}")


async def _get_log(engine, log_id):
    async with engine.db.read() as conn:
        return await ModLogRepo.get(conn, log_id)


@pytest_asyncio.fixture
async def blacklisted(engine):
    await engine.word_lists.add_word("badword", ListType.BLACK, MODERATOR_ID)
    return "badword"


@pytest.mark.asyncio
async def test_blacklisted_word_is_punished_without_classifier(engine, backend, platform, context) -> None:
    await engine.word_lists.add_word("badword", ListType.BLACK, MODERATOR_ID)

    report = await engine.pipeline.moderate_message(make_message("m1", "you BADWORD"), context)

    outcome = report.outcome
    assert outcome.kind is OutcomeKind.PUNISHED
    assert outcome.reason == BLACKLIST_REASON
    assert outcome.log_type is LogType.BLACKLIST
    assert outcome.matched_word == "badword"
    assert outcome.warning_count == 1
    assert outcome.threshold == 3
    assert outcome.message_deleted is False
    assert outcome.operator_alert is False
    assert backend.calls == []
    assert platform.deleted == []
    assert await engine.ledger.get_active_warning_count(USER_ID) == 1

    log = await _get_log(engine, outcome.log_id)
    assert log.type is LogType.BLACKLIST
    assert log.user_id == USER_ID
    assert log.moderator_id == SYSTEM_MODERATOR
    assert log.context_snapshot == context.text


@pytest.mark.asyncio
async def test_graylist_unsafe_reaching_threshold_raises_operator_alert(engine, backend, platform, context) -> None:
    await _prime_warnings(engine, 2)
    backend.queue(UNSAFE)

    report = await engine.pipeline.moderate_message(make_message("m1", "what a noob you are"), context)

    outcome = report.outcome
    assert outcome.kind is OutcomeKind.PUNISHED
    assert outcome.log_type is LogType.AI_JUDGE
    assert outcome.matched_word == "noob"
    assert outcome.warning_count == 3
    assert outcome.operator_alert is True
    assert outcome.message_deleted is False
    assert platform.deleted == []
    assert len(backend.calls) == 1
    assert '"noob"' in backend.calls[0]["prompt"]

    log = await _get_log(engine, outcome.log_id)
    assert log.ai_analysis == {"verdict": "UNSAFE", "reason": "direct insult"}


@pytest.mark.asyncio
async def test_violation_at_threshold_deletes_then_warns(engine, platform, context, blacklisted) -> None:
    await _prime_warnings(engine, 3)

    report = await engine.pipeline.moderate_message(make_message("m1", "badword again"), context)

    outcome = report.outcome
    assert outcome.kind is OutcomeKind.PUNISHED
    assert outcome.message_deleted is True
    assert outcome.warning_count == 4
    assert outcome.operator_alert is False
    assert platform.deleted == ["m1"]


@pytest.mark.asyncio
async def test_concurrent_violations_are_decided_one_after_the_other(engine, platform, context, blacklisted) -> None:
    await _prime_warnings(engine, 2)

    reports = await asyncio.gather(
        engine.pipeline.moderate_message(make_message("m1", "badword"), context),
        engine.pipeline.moderate_message(make_message("m2", "badword too"), context),
    )

    by_count = {r.outcome.warning_count: r for r in reports}
    assert sorted(by_count) == [3, 4]
    assert by_count[3].outcome.message_deleted is False
    assert by_count[3].outcome.operator_alert is True
    assert by_count[4].outcome.message_deleted is True
    assert platform.deleted == [by_count[4].message_id]
    await engine.pipeline.drain_background_tasks()
    assert engine.ledger.tracked_users == 0


@pytest.mark.asyncio
async def test_already_deleted_message_counts_as_removed(engine, platform, context, blacklisted) -> None:
    await _prime_warnings(engine, 3)
    platform.delete_error = MessageAlreadyDeleted("gone")

    report = await engine.pipeline.moderate_message(make_message("m1", "badword"), context)

    assert report.outcome.kind is OutcomeKind.PUNISHED
    assert report.outcome.message_deleted is True
    assert await engine.ledger.get_active_warning_count(USER_ID) == 4


@pytest.mark.parametrize("error", [PlatformPermissionError("missing manage messages"), PlatformError("500")])
@pytest.mark.asyncio
async def test_failed_deletion_aborts_without_warning(engine, platform, context, blacklisted, error) -> None:
    await _prime_warnings(engine, 3)
    platform.delete_error = error

    report = await engine.pipeline.moderate_message(make_message("m1", "badword"), context)

    assert report.outcome.kind is OutcomeKind.ENFORCEMENT_FAILED
    assert report.outcome.log_id is None
    assert await engine.ledger.get_active_warning_count(USER_ID) == 3
    async with engine.db.read() as conn:
        assert await ModLogRepo.count_for_user(conn, USER_ID, (LogType.BLACKLIST,), 0) == 0


@pytest.mark.asyncio
async def test_classifier_unavailable_never_punishes(engine, backend, context) -> None:
    backend.default = ClassifierBackendError("overloaded", status=503)

    report = await engine.pipeline.moderate_message(make_message("m1", "noob"), context)

    assert report.outcome.kind is OutcomeKind.UNAVAILABLE
    assert report.outcome.matched_word == "noob"
    assert len(backend.calls) == 3
    assert await engine.ledger.get_active_warning_count(USER_ID) == 0


@pytest.mark.asyncio
async def test_graylist_meta_discussion_is_safe(engine, backend, context) -> None:
    backend.queue('{"verdict": "SAFE", "reason": "asking what the word means"}')

    report = await engine.pipeline.moderate_message(make_message("m1", "what does noob mean?"), context)

    assert report.outcome.kind is OutcomeKind.SAFE
    assert report.punished is False
    assert await engine.ledger.get_active_warning_count(USER_ID) == 0


@pytest.mark.asyncio
async def test_long_message_goes_to_spam_check(engine, backend, context) -> None:
    backend.queue('{"verdict": "PUNISH", "reason": "wall of text", "type": "LONG_MESSAGE"}')

    report = await engine.pipeline.moderate_message(make_message("m1", "a" * 2001), context)

    assert report.outcome.kind is OutcomeKind.PUNISHED
    assert report.outcome.log_type is LogType.LONG_MESSAGE
    assert "2001" in backend.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_legitimate_long_message_is_safe(engine, backend, context) -> None:
    report = await engine.pipeline.moderate_message(make_message("m1", "a" * 2001), context)

    assert report.outcome.kind is OutcomeKind.SAFE
    assert len(backend.calls) == 1
    assert await engine.ledger.get_active_warning_count(USER_ID) == 0


@pytest.mark.asyncio
async def test_message_burst_triggers_spam_check(engine, backend, clock, context) -> None:
    backend.queue('{"verdict": "PUNISH", "reason": "flooding", "type": "SPAM"}')

    reports = []
    for i in range(5):
        reports.append(await engine.pipeline.moderate_message(make_message(f"m{i}", f"hello {i}"), context))
        clock.advance(seconds=1)

    assert [r.outcome.kind for r in reports[:4]] == [OutcomeKind.SAFE] * 4
    assert reports[4].outcome.kind is OutcomeKind.PUNISHED
    assert reports[4].outcome.log_type is LogType.SPAM
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_burst_window_slides(engine, backend, clock, context) -> None:
    for i in range(5):
        await engine.pipeline.moderate_message(make_message(f"m{i}", f"hello {i}"), context)
        clock.advance(seconds=3)

    # Messages spaced 3s apart never reach 5 within the 10s window
    assert backend.calls == []


@pytest.mark.asyncio
async def test_word_and_spam_stages_can_both_punish(engine, backend, context) -> None:
    backend.queue(UNSAFE, '{"verdict": "PUNISH", "reason": "too long", "type": "BOTH"}')

    report = await engine.pipeline.moderate_message(make_message("m1", "noob " + "x" * 2001), context)

    kinds = [(o.kind, o.log_type) for o in report.outcomes]
    assert kinds == [(OutcomeKind.PUNISHED, LogType.AI_JUDGE), (OutcomeKind.PUNISHED, LogType.SPAM_LONG)]
    assert await engine.ledger.get_active_warning_count(USER_ID) == 2


@pytest.mark.asyncio
async def test_spam_stage_skipped_after_deletion(engine, backend, context, blacklisted) -> None:
    await _prime_warnings(engine, 3)

    report = await engine.pipeline.moderate_message(make_message("m1", "badword " + "x" * 2001), context)

    assert len(report.outcomes) == 1
    assert report.outcome.message_deleted is True
    assert backend.calls == []
    assert await engine.ledger.get_active_warning_count(USER_ID) == 4


@pytest.mark.asyncio
async def test_admins_and_bots_are_exempt(engine, platform, context, blacklisted) -> None:
    platform.admins.add("700000000000000007")

    config_admin = await engine.pipeline.moderate_message(make_message("m1", "badword", author_id=ADMIN_ID), context)
    role_admin = await engine.pipeline.moderate_message(
        make_message("m2", "badword", author_id="700000000000000007"), context
    )
    bot = await engine.pipeline.moderate_message(make_message("m3", "badword", author_is_bot=True), context)

    for report in (config_admin, role_admin, bot):
        assert report.outcomes == []
        assert report.outcome.kind is OutcomeKind.SAFE
    assert context.calls == 0


@pytest.mark.asyncio
async def test_failed_admin_check_moderates_anyway(engine, platform, context, blacklisted) -> None:
    platform.admin_error = PlatformError("member lookup failed")

    report = await engine.pipeline.moderate_message(make_message("m1", "badword"), context)

    assert report.outcome.kind is OutcomeKind.PUNISHED


@pytest.mark.asyncio
async def test_clean_message_does_not_fetch_context(engine, backend, context) -> None:
    report = await engine.pipeline.moderate_message(make_message("m1", "good morning"), context)

    assert report.outcomes == []
    assert context.calls == 0
    assert backend.calls == []


@pytest.mark.asyncio
async def test_default_context_fetcher_reads_platform_history(engine, platform, blacklisted) -> None:
    platform.add(make_message("m1", "hi all", author_id="100000000000000009", author_name="alice", created_at=1))
    target = platform.add(make_message("m2", "badword", created_at=2))
    platform.add(make_message("m3", "rude", author_id="100000000000000009", author_name="alice", created_at=3))

    report = await engine.pipeline.moderate_message(target)

    log = await _get_log(engine, report.outcome.log_id)
    assert log.context_snapshot == "[alice]: hi all\n[TARGET] [bob]: badword\n[alice]: rude"


@pytest.mark.asyncio
async def test_trust_score_refreshed_in_background(engine, context, blacklisted) -> None:
    await engine.pipeline.moderate_message(make_message("m1", "badword"), context)
    await engine.pipeline.drain_background_tasks()

    async with engine.db.read() as conn:
        trust = await TrustScoreRepo.get(conn, USER_ID)
    assert trust is not None
    assert trust.warning_count_snapshot == 1
    assert trust.score == 40


@pytest.mark.asyncio
async def test_message_tracking_is_pruned_after_retention(engine, clock, context) -> None:
    await engine.pipeline.moderate_message(make_message("m1", "hello"), context)
    await engine.pipeline.moderate_message(make_message("m2", "hello again"), context)

    assert await engine.pipeline.prune_message_tracking() == 0
    clock.advance(days=31)
    assert await engine.pipeline.prune_message_tracking() == 2

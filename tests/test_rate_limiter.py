import pytest

from fairguard.moderation.rate_limiter import RateLimiter

from conftest import OTHER_USER_ID, USER_ID


@pytest.fixture
def limiter(db, clock) -> RateLimiter:
    return RateLimiter(db, max_commands=5, window_seconds=60, clock=clock)


@pytest.mark.asyncio
async def test_sixth_command_in_window_is_denied(limiter, clock) -> None:
    results = []
    for _ in range(6):
        results.append(await limiter.allow(USER_ID))
        clock.advance(seconds=1)

    assert results == [True] * 5 + [False]


@pytest.mark.asyncio
async def test_window_resets_after_it_ends(limiter, clock) -> None:
    for _ in range(6):
        await limiter.allow(USER_ID)

    clock.advance(seconds=61)

    assert [await limiter.allow(USER_ID) for _ in range(5)] == [True] * 5
    assert await limiter.allow(USER_ID) is False


@pytest.mark.asyncio
async def test_window_is_anchored_at_first_command(limiter, clock) -> None:
    await limiter.allow(USER_ID)
    clock.advance(seconds=59)
    for _ in range(4):
        assert await limiter.allow(USER_ID)
    assert await limiter.allow(USER_ID) is False

    clock.advance(seconds=1)

    assert await limiter.allow(USER_ID)


@pytest.mark.asyncio
async def test_users_are_counted_independently(limiter) -> None:
    for _ in range(5):
        await limiter.allow(USER_ID)

    assert await limiter.allow(USER_ID) is False
    assert await limiter.allow(OTHER_USER_ID) is True


@pytest.mark.asyncio
async def test_prune_drops_finished_windows(limiter, clock) -> None:
    await limiter.allow(USER_ID)
    clock.advance(seconds=30)
    await limiter.allow(OTHER_USER_ID)

    assert await limiter.prune() == 0
    clock.advance(seconds=31)
    assert await limiter.prune() == 1
    assert await limiter.allow(USER_ID) is True

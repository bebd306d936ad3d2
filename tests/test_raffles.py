import asyncio
import random
from datetime import timedelta

import pytest

from errors import (
    DuplicateActiveRaffle,
    NoValidEntries,
    RaffleExpired,
    RaffleNotFound,
    ServiceAccountRejected,
)
from raffles import EntryOutcome, RaffleDuration, RaffleEngine, RaffleStore

GUILD = 1355432987793297498
OTHER_GUILD = 42
ADMIN = 1
CHANNEL = 777


@pytest.fixture
def engine(clock):
    return RaffleEngine(RaffleStore(), clock=clock, rng=random.Random(7))


def start(engine, name="giveaway1", winners=1, duration=RaffleDuration.ONE_HOUR, guild=GUILD):
    return engine.start_raffle(
        guild_id=guild,
        name=name,
        prize="Discord Nitro",
        winner_count=winners,
        duration=duration,
        rules=None,
        organizer_id=ADMIN,
        channel_id=CHANNEL,
    )


# ── start ──────────────────────────────────────────────────────────

def test_start_sets_end_time_and_metadata(engine, clock):
    raffle = start(engine, duration=RaffleDuration.SIX_HOURS)

    assert raffle.end_time == clock.now + timedelta(hours=6)
    assert raffle.created_by == ADMIN
    assert raffle.announcement_channel_id == CHANNEL
    assert raffle.entries == set()
    assert engine.get(GUILD, "giveaway1") is raffle


def test_duplicate_name_is_rejected_case_insensitively(engine):
    first = start(engine)
    with pytest.raises(DuplicateActiveRaffle):
        start(engine, name="  GiveAway1 ")
    assert engine.get(GUILD, "giveaway1") is first
    assert len(engine.active_raffles(GUILD)) == 1


def test_same_name_in_another_guild_is_allowed(engine):
    start(engine)
    start(engine, guild=OTHER_GUILD)
    assert len(engine.store) == 2


def test_winner_count_must_be_positive(engine):
    with pytest.raises(ValueError):
        start(engine, winners=0)
    assert len(engine.store) == 0


def test_duration_labels():
    assert RaffleDuration.ONE_HOUR.label == "1 hour"
    assert RaffleDuration.ONE_DAY.label == "24 hours"
    assert RaffleDuration.TWELVE_HOURS.delta == timedelta(hours=12)


def test_attach_announcement(engine):
    start(engine)
    engine.attach_announcement(GUILD, "Giveaway1", 999)
    assert engine.get(GUILD, "giveaway1").announcement_message_id == 999

    # unknown raffle is a no-op
    engine.attach_announcement(GUILD, "nope", 1000)


# ── enter ──────────────────────────────────────────────────────────

def test_repeated_entry_counts_once(engine):
    start(engine)
    first = engine.enter(GUILD, "giveaway1", 11)
    second = engine.enter(GUILD, "giveaway1", 11)

    assert first.outcome is EntryOutcome.ENTERED
    assert second.outcome is EntryOutcome.ALREADY_ENTERED
    assert second.entry_count == 1
    assert engine.get(GUILD, "giveaway1").entries == {11}


def test_enter_uses_case_insensitive_name(engine):
    start(engine, name="Summer Raffle")
    result = engine.enter(GUILD, "summer raffle", 11)
    assert result.raffle.name == "Summer Raffle"


def test_service_account_cannot_enter(engine):
    start(engine)
    with pytest.raises(ServiceAccountRejected):
        engine.enter(GUILD, "giveaway1", 99, is_service_account=True)
    assert engine.get(GUILD, "giveaway1").entries == set()


def test_enter_unknown_raffle(engine):
    with pytest.raises(RaffleNotFound):
        engine.enter(GUILD, "giveaway1", 11)


def test_enter_after_end_time(engine, clock):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)

    clock.now += timedelta(hours=1)
    engine.enter(GUILD, "giveaway1", 12)  # still open at the exact end time

    clock.now += timedelta(seconds=1)
    with pytest.raises(RaffleExpired):
        engine.enter(GUILD, "giveaway1", 13)
    assert engine.get(GUILD, "giveaway1").entries == {11, 12}


# ── draw ───────────────────────────────────────────────────────────

async def test_giveaway1_scenario(engine):
    start(engine)
    for member in (11, 12, 13):
        engine.enter(GUILD, "giveaway1", member)

    result = await engine.pick_winners(GUILD, "giveaway1", ADMIN)

    assert len(result.winners) == 1
    assert result.winners[0] in {11, 12, 13}
    assert result.valid_count == 3
    assert result.total_count == 3
    assert engine.get(GUILD, "giveaway1") is None

    with pytest.raises(RaffleNotFound):
        engine.enter(GUILD, "giveaway1", 14)
    with pytest.raises(RaffleNotFound):
        await engine.pick_winners(GUILD, "giveaway1", ADMIN)


async def test_winners_are_distinct_and_bounded(engine):
    start(engine, winners=3)
    for member in range(100, 110):
        engine.enter(GUILD, "giveaway1", member)

    result = await engine.pick_winners(GUILD, "giveaway1", ADMIN)
    assert len(result.winners) == 3
    assert len(set(result.winners)) == 3
    assert set(result.winners) <= set(range(100, 110))


async def test_fewer_entries_than_winners(engine):
    start(engine, winners=5)
    engine.enter(GUILD, "giveaway1", 11)
    engine.enter(GUILD, "giveaway1", 12)

    result = await engine.pick_winners(GUILD, "giveaway1", ADMIN)
    assert sorted(result.winners) == [11, 12]


async def test_bots_are_excluded_from_the_draw(engine):
    start(engine, winners=3)
    for member in (11, 12, 13):
        engine.enter(GUILD, "giveaway1", member)

    async def is_bot(member_id):
        return member_id == 13

    result = await engine.pick_winners(GUILD, "giveaway1", ADMIN, is_bot)
    assert sorted(result.winners) == [11, 12]
    assert result.valid_count == 2
    assert result.total_count == 3


async def test_no_valid_entries_keeps_raffle_active(engine):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)

    async def everyone_is_a_bot(member_id):
        return True

    with pytest.raises(NoValidEntries):
        await engine.pick_winners(GUILD, "giveaway1", ADMIN, everyone_is_a_bot)
    assert engine.get(GUILD, "giveaway1").entries == {11}


async def test_empty_raffle_cannot_be_drawn(engine):
    start(engine)
    with pytest.raises(NoValidEntries):
        await engine.pick_winners(GUILD, "giveaway1", ADMIN)
    assert engine.get(GUILD, "giveaway1") is not None


async def test_unclassifiable_entrant_counts_as_human(engine):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)

    async def left_the_server(member_id):
        raise LookupError(member_id)

    result = await engine.pick_winners(GUILD, "giveaway1", ADMIN, left_the_server)
    assert result.winners == [11]


async def test_draw_after_end_time_is_allowed(engine, clock):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)
    clock.now += timedelta(days=2)

    result = await engine.pick_winners(GUILD, "giveaway1", ADMIN)
    assert result.winners == [11]


async def test_concurrent_draws_produce_one_result(engine):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)
    engine.enter(GUILD, "giveaway1", 12)

    async def slow_check(member_id):
        await asyncio.sleep(0)
        return False

    results = await asyncio.gather(
        engine.pick_winners(GUILD, "giveaway1", ADMIN, slow_check),
        engine.pick_winners(GUILD, "giveaway1", ADMIN, slow_check),
        return_exceptions=True,
    )
    draws = [r for r in results if not isinstance(r, Exception)]
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(draws) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], RaffleNotFound)


async def test_entry_during_draw_is_refused(engine):
    start(engine, winners=5)
    engine.enter(GUILD, "giveaway1", 11)
    engine.enter(GUILD, "giveaway1", 12)

    async def slow_check(member_id):
        await asyncio.sleep(0)
        return False

    async def late_entry():
        await asyncio.sleep(0)
        return engine.enter(GUILD, "giveaway1", 13)

    draw, late = await asyncio.gather(
        engine.pick_winners(GUILD, "giveaway1", ADMIN, slow_check),
        late_entry(),
        return_exceptions=True,
    )
    assert isinstance(late, RaffleNotFound)
    assert draw.total_count == 2
    assert sorted(draw.winners) == [11, 12]


async def test_failed_draw_reopens_entry(engine):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)
    engine.enter(GUILD, "giveaway1", 12)

    async def everyone_is_a_bot(member_id):
        await asyncio.sleep(0)
        return True

    async def late_entry():
        await asyncio.sleep(0)
        return engine.enter(GUILD, "giveaway1", 13)

    draw, late = await asyncio.gather(
        engine.pick_winners(GUILD, "giveaway1", ADMIN, everyone_is_a_bot),
        late_entry(),
        return_exceptions=True,
    )
    assert isinstance(draw, NoValidEntries)
    assert isinstance(late, RaffleNotFound)

    result = engine.enter(GUILD, "giveaway1", 13)
    assert result.outcome is EntryOutcome.ENTERED
    assert engine.get(GUILD, "giveaway1").entries == {11, 12, 13}


async def test_cancel_during_draw_wins(engine):
    start(engine)
    engine.enter(GUILD, "giveaway1", 11)

    async def slow_check(member_id):
        await asyncio.sleep(0)
        return False

    async def cancel():
        engine.discard(GUILD, "giveaway1")

    results = await asyncio.gather(
        engine.pick_winners(GUILD, "giveaway1", ADMIN, slow_check),
        cancel(),
        return_exceptions=True,
    )
    assert isinstance(results[0], RaffleNotFound)


# ── discard ────────────────────────────────────────────────────────

def test_discard(engine):
    start(engine)
    raffle = engine.discard(GUILD, "GIVEAWAY1")
    assert raffle.name == "giveaway1"
    assert engine.get(GUILD, "giveaway1") is None

    with pytest.raises(RaffleNotFound):
        engine.discard(GUILD, "giveaway1")

    # the name is free again
    start(engine)


def test_active_raffles_in_start_order(engine, clock):
    start(engine, name="b")
    clock.now += timedelta(minutes=1)
    start(engine, name="a")
    start(engine, name="other", guild=OTHER_GUILD)

    assert [r.name for r in engine.active_raffles(GUILD)] == ["b", "a"]

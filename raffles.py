# raffles.py
from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from errors import (
    DuplicateActiveRaffle,
    NoValidEntries,
    RaffleExpired,
    RaffleNotFound,
    ServiceAccountRejected,
)

LOG = logging.getLogger(__name__)

RaffleKey = Tuple[int, str]
ServiceAccountCheck = Callable[[int], Awaitable[bool]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def raffle_key(guild_id: int, name: str) -> RaffleKey:
    return guild_id, name.strip().lower()


class RaffleDuration(enum.Enum):
    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    SIX_HOURS = "6h"
    TWELVE_HOURS = "12h"
    ONE_DAY = "24h"

    @property
    def delta(self) -> timedelta:
        return timedelta(hours=int(self.value[:-1]))

    @property
    def label(self) -> str:
        hours = int(self.value[:-1])
        return "1 hour" if hours == 1 else f"{hours} hours"


class EntryOutcome(enum.Enum):
    ENTERED = "entered"
    ALREADY_ENTERED = "already_entered"


@dataclass
class RaffleState:
    guild_id: int
    name: str
    prize: str
    number_of_winners: int
    end_time: datetime
    created_by: int
    announcement_channel_id: int
    rules: Optional[str] = None
    entries: Set[int] = field(default_factory=set)
    created_at: datetime = field(default_factory=utc_now)
    announcement_message_id: Optional[int] = None
    drawing: bool = False

    @property
    def key(self) -> RaffleKey:
        return raffle_key(self.guild_id, self.name)

    def is_expired(self, now: datetime) -> bool:
        return now > self.end_time


@dataclass(frozen=True)
class EntryResult:
    outcome: EntryOutcome
    entry_count: int
    raffle: RaffleState


@dataclass(frozen=True)
class DrawResult:
    raffle: RaffleState
    winners: List[int]
    valid_count: int
    total_count: int


class RaffleStore:
    """Active raffles, keyed by (guild id, lower-cased name)."""

    def __init__(self) -> None:
        self._active: Dict[RaffleKey, RaffleState] = {}

    def insert_if_absent(self, state: RaffleState) -> bool:
        if state.key in self._active:
            return False
        self._active[state.key] = state
        return True

    def get(self, guild_id: int, name: str) -> Optional[RaffleState]:
        return self._active.get(raffle_key(guild_id, name))

    def pop(self, guild_id: int, name: str) -> Optional[RaffleState]:
        return self._active.pop(raffle_key(guild_id, name), None)

    def for_guild(self, guild_id: int) -> List[RaffleState]:
        return sorted(
            (r for r in self._active.values() if r.guild_id == guild_id),
            key=lambda r: r.created_at,
        )

    def __len__(self) -> int:
        return len(self._active)


class RaffleEngine:
    """Start, enter and draw named raffles.

    Every mutation of the store happens without an await in between the
    lookup and the write, so concurrent handlers can't interleave inside one.
    A raffle being drawn accepts no entries; if the draw fails it reopens.
    """

    def __init__(
        self,
        store: RaffleStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.rng = rng or random.SystemRandom()

    def get(self, guild_id: int, name: str) -> Optional[RaffleState]:
        return self.store.get(guild_id, name)

    def active_raffles(self, guild_id: int) -> List[RaffleState]:
        return self.store.for_guild(guild_id)

    def start_raffle(
        self,
        guild_id: int,
        name: str,
        prize: str,
        winner_count: int,
        duration: RaffleDuration,
        rules: Optional[str],
        organizer_id: int,
        channel_id: int,
    ) -> RaffleState:
        name = name.strip()
        if winner_count < 1:
            raise ValueError("winner_count must be at least 1")

        now = self.clock()
        state = RaffleState(
            guild_id=guild_id,
            name=name,
            prize=prize,
            number_of_winners=winner_count,
            end_time=now + duration.delta,
            created_by=organizer_id,
            announcement_channel_id=channel_id,
            rules=rules or None,
            created_at=now,
        )
        if not self.store.insert_if_absent(state):
            raise DuplicateActiveRaffle(
                f'A raffle named "{name}" is already active. '
                "Please use a different name or end the existing raffle first."
            )

        LOG.info(
            "Raffle %r started by %s in guild %s: %d winner(s), ends %s",
            name,
            organizer_id,
            guild_id,
            winner_count,
            state.end_time.isoformat(),
        )
        return state

    def attach_announcement(self, guild_id: int, name: str, message_id: int) -> None:
        state = self.store.get(guild_id, name)
        if state is not None:
            state.announcement_message_id = message_id

    def enter(
        self,
        guild_id: int,
        name: str,
        member_id: int,
        *,
        is_service_account: bool = False,
    ) -> EntryResult:
        if is_service_account:
            raise ServiceAccountRejected()

        state = self.store.get(guild_id, name)
        if state is None or state.drawing:
            raise RaffleNotFound()
        if state.is_expired(self.clock()):
            raise RaffleExpired()

        if member_id in state.entries:
            return EntryResult(EntryOutcome.ALREADY_ENTERED, len(state.entries), state)

        state.entries.add(member_id)
        LOG.info("Member %s entered raffle %r in guild %s", member_id, state.name, guild_id)
        return EntryResult(EntryOutcome.ENTERED, len(state.entries), state)

    async def pick_winners(
        self,
        guild_id: int,
        name: str,
        caller_id: int,
        is_service_account: Optional[ServiceAccountCheck] = None,
    ) -> DrawResult:
        state = self.store.get(guild_id, name)
        if state is None or state.drawing:
            raise RaffleNotFound()

        # closed for entry and for other draws until this one finishes
        state.drawing = True
        try:
            snapshot = list(state.entries)
            valid: List[int] = []
            for member_id in snapshot:
                if is_service_account is not None and await self._is_bot(is_service_account, member_id):
                    continue
                valid.append(member_id)

            # cancelled while we were classifying
            if self.store.get(guild_id, name) is not state:
                raise RaffleNotFound()
            if not valid:
                raise NoValidEntries()

            winners = self.rng.sample(valid, min(state.number_of_winners, len(valid)))
            self.store.pop(guild_id, name)
        finally:
            state.drawing = False

        LOG.info(
            "Raffle %r ended by %s: %d winner(s) from %d/%d valid entries",
            state.name,
            caller_id,
            len(winners),
            len(valid),
            len(snapshot),
        )
        return DrawResult(state, winners, len(valid), len(snapshot))

    @staticmethod
    async def _is_bot(check: ServiceAccountCheck, member_id: int) -> bool:
        try:
            return await check(member_id)
        except Exception:
            # unknown accounts count as human
            LOG.warning("Could not classify raffle entrant %s; keeping the entry", member_id)
            return False

    def discard(self, guild_id: int, name: str) -> RaffleState:
        state = self.store.pop(guild_id, name)
        if state is None:
            raise RaffleNotFound()
        LOG.info("Raffle %r in guild %s discarded without a draw", state.name, guild_id)
        return state

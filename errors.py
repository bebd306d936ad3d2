# errors.py
from __future__ import annotations

from typing import Optional


class BotError(Exception):
    """Base error. `message` is safe to show to the member who triggered it."""

    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ─────────────────────────────────────────────
# Raffles (caller-facing, state is left unchanged)
# ─────────────────────────────────────────────

class RaffleError(BotError):
    pass


class DuplicateActiveRaffle(RaffleError):
    default_message = "A raffle with that name is already active."


class RaffleNotFound(RaffleError):
    default_message = "This raffle is no longer active."


class RaffleExpired(RaffleError):
    default_message = "This raffle has expired."


class NoValidEntries(RaffleError):
    default_message = "This raffle has no valid entries (excluding bots). Cannot pick winners."


class ServiceAccountRejected(RaffleError):
    default_message = "Bots cannot enter raffles."


# ─────────────────────────────────────────────
# Discord side effects (logged, never fatal)
# ─────────────────────────────────────────────

class PlatformError(BotError):
    default_message = "Discord rejected the request."


class ChannelCreationFailed(PlatformError):
    default_message = "Could not create the voice channel."


class PermissionGrantFailed(PlatformError):
    default_message = "Could not update channel permissions."


class MoveFailed(PlatformError):
    default_message = "Could not move the member."


class DeletionFailed(PlatformError):
    default_message = "Could not delete the channel."


class NotificationFailed(PlatformError):
    default_message = "Could not deliver the message."


class ChannelGone(PlatformError):
    """The channel no longer exists on Discord."""

    default_message = "That channel no longer exists."

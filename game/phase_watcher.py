"""Turn a game's absolute signals into one-shot navigation nudges for a client.

Each client keeps a cursor of the last value it saw per channel. The server
stays stateless: the client sends its cursor, gets back at most one nudge and
the cursor to store. Comparing absolute values means a missed poll is
harmless; the next one reconciles.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from game.state import Game


class Channel(str, Enum):
    ROLES = "roles"
    VOTING = "voting"
    REVEAL = "reveal"
    KITCHEN = "kitchen"
    MINIGAME = "minigame"


# Where each channel sends the player
DESTINATIONS = {
    Channel.ROLES: "/profile",
    Channel.VOTING: "/voting",
    Channel.REVEAL: "/voting/reveal",
    Channel.KITCHEN: "/kitchen",
    Channel.MINIGAME: "/minigame",
}


@dataclass(frozen=True)
class GameSignals:
    """The signal fields of a game, as polled by clients."""

    game_id: str
    cur_round_number: Optional[int] = None
    last_revealed_round: Optional[int] = None
    roles_revealed: bool = False
    kitchen_signal_version: int = 0
    minigame_signal_version: int = 0

    @classmethod
    def from_game(cls, game: Game) -> "GameSignals":
        return cls(
            game_id=game.id,
            cur_round_number=game.cur_round_number,
            last_revealed_round=game.last_revealed_round,
            roles_revealed=game.roles_revealed,
            kitchen_signal_version=game.kitchen_signal_version,
            minigame_signal_version=game.minigame_signal_version,
        )


@dataclass(frozen=True)
class PhaseCursor:
    """Last values a client has seen. None means never observed."""

    round_number: Optional[int] = None
    revealed_round: Optional[int] = None
    roles_revealed: bool = False
    kitchen_version: Optional[int] = None
    minigame_version: Optional[int] = None


@dataclass(frozen=True)
class Nudge:
    channel: Channel
    destination: str = field(default="")

    def __post_init__(self):
        if not self.destination:
            object.__setattr__(self, "destination", DESTINATIONS[self.channel])


def _counter_nudge(seen: Optional[int], current: int) -> bool:
    # First observation only records the value; new logins are not pulled into a stale phase.
    return seen is not None and current > seen


def next_nudge(signals: GameSignals, cursor: PhaseCursor) -> tuple[Optional[Nudge], PhaseCursor]:
    """
    Return (nudge or None, updated cursor). At most one nudge per call, in priority
    order: roles, voting, reveal, kitchen, minigame. Counter channels seen for the
    first time are recorded without a nudge.
    """
    if signals.roles_revealed and not cursor.roles_revealed:
        return Nudge(Channel.ROLES), replace(cursor, roles_revealed=True)
    if not signals.roles_revealed and cursor.roles_revealed:
        # Roles were cleared; re-arm so the next reveal nudges again.
        cursor = replace(cursor, roles_revealed=False)

    if signals.cur_round_number is not None and signals.cur_round_number != cursor.round_number:
        return Nudge(Channel.VOTING), replace(cursor, round_number=signals.cur_round_number)

    if signals.last_revealed_round is not None and signals.last_revealed_round != cursor.revealed_round:
        return Nudge(Channel.REVEAL), replace(cursor, revealed_round=signals.last_revealed_round)

    if cursor.kitchen_version != signals.kitchen_signal_version:
        nudge = _counter_nudge(cursor.kitchen_version, signals.kitchen_signal_version)
        cursor = replace(cursor, kitchen_version=signals.kitchen_signal_version)
        if nudge:
            return Nudge(Channel.KITCHEN), cursor

    if cursor.minigame_version != signals.minigame_signal_version:
        nudge = _counter_nudge(cursor.minigame_version, signals.minigame_signal_version)
        cursor = replace(cursor, minigame_version=signals.minigame_signal_version)
        if nudge:
            return Nudge(Channel.MINIGAME), cursor

    return None, cursor

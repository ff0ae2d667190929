"""Game state types for the Traitors host.

These are the typed records the rest of the code works with. The store
converts its rows into these at the boundary, so nothing outside
``api.game_store`` ever touches an ORM object.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from game.rules import (
    DEFAULT_SHIELD_THRESHOLD,
    GameStatus,
    Role,
    RoundStatus,
    RoundType,
    VoteKind,
    Winner,
)


@dataclass(frozen=True)
class Game:
    """One play session."""

    id: str
    name: str
    status: GameStatus
    host: Optional[str] = None
    created_at: Optional[datetime] = None
    cur_round_number: Optional[int] = None
    last_revealed_round: Optional[int] = None
    roles_revealed: bool = False
    kitchen_signal_version: int = 0
    minigame_signal_version: int = 0
    shield_points_threshold: int = DEFAULT_SHIELD_THRESHOLD

    def is_hosted_by(self, actor_id: Optional[str]) -> bool:
        return actor_id is not None and self.host == actor_id


@dataclass(frozen=True)
class Round:
    """One phase within a game."""

    id: str
    game_id: str
    round: int
    type: RoundType
    status: RoundStatus
    winning_group_index: Optional[int] = None
    question: Optional[str] = None  # cover question shown to players, killing votes only

    @property
    def is_active(self) -> bool:
        return self.status == RoundStatus.ACTIVE


@dataclass(frozen=True)
class Player:
    """A participant in one game. The id is the external identity of the player."""

    id: str
    game_id: str
    full_name: str
    headshot_url: Optional[str] = None
    eliminated: bool = False
    role: Optional[Role] = None
    has_shield: bool = False

    @property
    def alive(self) -> bool:
        return not self.eliminated


@dataclass(frozen=True)
class Ballot:
    """A targeted vote (banishment or killing round)."""

    round_id: str
    voter_id: str
    target_id: str
    kind: VoteKind = VoteKind.STANDARD


@dataclass(frozen=True)
class EndgameBallot:
    """A yes/no answer to "have all traitors been found?"."""

    round_id: str
    voter_id: str
    all_traitors_found: bool


@dataclass(frozen=True)
class GroupAssignment:
    """Places one player in a 1-based group of a minigame round."""

    game_id: str
    round_id: str
    player_id: str
    group_index: int


@dataclass(frozen=True)
class TallyEntry:
    """Vote count for one target."""

    target_id: str
    votes: int
    full_name: Optional[str] = None
    eliminated: bool = False


@dataclass
class RoundTally:
    """Tally of a targeted round.

    For killing rounds ``kill`` holds the traitors' leaderboard; it is kept
    separate from ``standard`` and never merged into it.
    """

    round_type: RoundType
    standard: list[TallyEntry] = field(default_factory=list)
    kill: Optional[list[TallyEntry]] = None


@dataclass(frozen=True)
class EndgameTally:
    """Yes/no counts of an endgame vote."""

    yes: int = 0
    no: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no


@dataclass(frozen=True)
class Outcome:
    """Result of a resolution step. ``winner`` is None when the game continues."""

    message: str
    winner: Optional[Winner] = None

    @property
    def game_over(self) -> bool:
        return self.winner is not None

"""Game engine for the Traitors host."""

from game.engine import (
    assign_roles,
    check_endgame_start,
    evaluate_win_condition,
    group_players,
    next_round_number,
    resolve_endgame,
    shuffled,
    tally_ballots,
    tally_endgame,
    tally_round,
)
from game.errors import (
    AlreadyVotedError,
    ConflictError,
    GameError,
    NotFoundError,
    NotHostError,
    StoreError,
    ValidationError,
)
from game.phase_watcher import GameSignals, Nudge, PhaseCursor, next_nudge
from game.policies import RoundPolicy, policy_for
from game.rules import GameStatus, Role, RoundStatus, RoundType, VoteKind, Winner
from game.state import Ballot, EndgameBallot, Game, GroupAssignment, Outcome, Player, Round

__all__ = [
    "assign_roles",
    "check_endgame_start",
    "evaluate_win_condition",
    "group_players",
    "next_round_number",
    "resolve_endgame",
    "shuffled",
    "tally_ballots",
    "tally_endgame",
    "tally_round",
    "AlreadyVotedError",
    "ConflictError",
    "GameError",
    "NotFoundError",
    "NotHostError",
    "StoreError",
    "ValidationError",
    "GameSignals",
    "Nudge",
    "PhaseCursor",
    "next_nudge",
    "RoundPolicy",
    "policy_for",
    "GameStatus",
    "Role",
    "RoundStatus",
    "RoundType",
    "VoteKind",
    "Winner",
    "Ballot",
    "EndgameBallot",
    "Game",
    "GroupAssignment",
    "Outcome",
    "Player",
    "Round",
]

"""Per-round-type rules: who may vote, for whom, and how ballots are read."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from game.errors import ValidationError
from game.rules import REVEALABLE_ROUND_TYPES, VOTING_ROUND_TYPES, Role, RoundType, VoteKind
from game.state import Player


class BallotShape(str, Enum):
    """What a ballot for a round looks like."""

    NONE = "none"
    TARGETED = "targeted"
    ENDGAME = "endgame"


class TallyMode(str, Enum):
    """How a round's ballots are counted."""

    NONE = "none"
    STANDARD = "standard"  # one leaderboard of standard ballots
    SPLIT = "split"  # standard and kill leaderboards, never merged
    YES_NO = "yes_no"


@dataclass(frozen=True)
class RoundPolicy:
    round_type: RoundType
    ballot_shape: BallotShape = BallotShape.NONE
    tally_mode: TallyMode = TallyMode.NONE
    shield_blocks_target: bool = False
    traitors_cast_kill: bool = False
    clears_shields_on_close: bool = False
    resolves_endgame_on_close: bool = False
    asks_cover_question: bool = False

    @property
    def accepts_ballots(self) -> bool:
        return self.ballot_shape != BallotShape.NONE

    @property
    def signals_voting(self) -> bool:
        """True when opening this round should send players to the voting screen."""
        return self.round_type in VOTING_ROUND_TYPES

    @property
    def revealable(self) -> bool:
        return self.round_type in REVEALABLE_ROUND_TYPES


POLICIES: dict[RoundType, RoundPolicy] = {
    RoundType.ROUND_TABLE: RoundPolicy(RoundType.ROUND_TABLE),
    RoundType.BANISHMENT_VOTE: RoundPolicy(
        RoundType.BANISHMENT_VOTE,
        ballot_shape=BallotShape.TARGETED,
        tally_mode=TallyMode.STANDARD,
    ),
    RoundType.BANISHMENT_RESULT: RoundPolicy(RoundType.BANISHMENT_RESULT),
    RoundType.KILLING_VOTE: RoundPolicy(
        RoundType.KILLING_VOTE,
        ballot_shape=BallotShape.TARGETED,
        tally_mode=TallyMode.SPLIT,
        shield_blocks_target=True,
        traitors_cast_kill=True,
        clears_shields_on_close=True,
        asks_cover_question=True,
    ),
    RoundType.BREAKFAST: RoundPolicy(RoundType.BREAKFAST),
    RoundType.MINIGAME: RoundPolicy(RoundType.MINIGAME),
    RoundType.ENDGAME_VOTE: RoundPolicy(
        RoundType.ENDGAME_VOTE,
        ballot_shape=BallotShape.ENDGAME,
        tally_mode=TallyMode.YES_NO,
        resolves_endgame_on_close=True,
    ),
}


def policy_for(round_type: RoundType) -> RoundPolicy:
    return POLICIES[RoundType(round_type)]


def classify_ballot(policy: RoundPolicy, voter: Player) -> VoteKind:
    """Kill for traitors in rounds where traitors choose a victim, standard otherwise."""
    if policy.traitors_cast_kill and voter.role == Role.TRAITOR:
        return VoteKind.KILL
    return VoteKind.STANDARD


def check_voter(voter: Player) -> None:
    if voter.eliminated:
        raise ValidationError("You have been eliminated and cannot vote in this round.")


def check_targeted_ballot(policy: RoundPolicy, voter: Player, target: Optional[Player]) -> None:
    """Raise ValidationError unless voter may pick target in a round with this policy.

    Checks run in a fixed order: eliminated voter, shielded target, self vote,
    then target eligibility.
    """
    check_voter(voter)
    if target is None:
        raise ValidationError("Please select a player before casting your vote.")
    if policy.shield_blocks_target and target.has_shield:
        raise ValidationError(
            "That player currently has a shield and cannot be chosen in this Traitor vote."
        )
    if target.id == voter.id:
        raise ValidationError("You cannot vote for yourself.")
    if target.game_id != voter.game_id or target.eliminated:
        raise ValidationError("That player cannot be voted for in this round.")


def eligible_targets(voter_id: str, players: list[Player]) -> list[Player]:
    """Players a voter may choose: everyone still in the game except the voter.

    Shielded players are included; callers flag them for killing rounds.
    """
    return sorted(
        (p for p in players if p.alive and p.id != voter_id),
        key=lambda p: p.full_name,
    )

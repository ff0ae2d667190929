"""Player operations on the active game: joining, voting and the read-only screens."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from api.game_store import GameStore
from game.engine import tally_endgame, tally_round
from game.errors import AlreadyVotedError, NotFoundError, ValidationError
from game.phase_watcher import GameSignals, Nudge, PhaseCursor, next_nudge
from game.policies import (
    BallotShape,
    check_targeted_ballot,
    check_voter,
    classify_ballot,
    eligible_targets,
    policy_for,
)
from game.rules import VOTING_ROUND_TYPES, RoundStatus, RoundType
from game.state import Ballot, EndgameBallot, EndgameTally, Game, Player, Round, RoundTally

logger = logging.getLogger(__name__)

NO_ACTIVE_GAME = "No active game is currently configured. Please wait for the host to start a game."
NOT_IN_GAME = "You are not part of the active game. Please complete onboarding first."


@dataclass
class VotingScreen:
    round: Optional[Round] = None
    targets: list[Player] = field(default_factory=list)
    shield_blocks_target: bool = False
    has_voted: bool = False
    last_endgame_round: Optional[Round] = None
    last_endgame_tally: Optional[EndgameTally] = None


@dataclass
class RevealScreen:
    round: Optional[Round] = None
    tally: Optional[RoundTally] = None


@dataclass
class MinigameScreen:
    round: Optional[Round] = None
    group_index: Optional[int] = None


def _active_game(store: GameStore) -> Game:
    game = store.get_active_game()
    if game is None:
        raise NotFoundError(NO_ACTIVE_GAME)
    return game


def _membership(store: GameStore, actor_id: str, game: Game) -> Player:
    player = store.get_player(actor_id)
    if player is None or player.game_id != game.id:
        raise NotFoundError(NOT_IN_GAME)
    return player


def join_active_game(
    store: GameStore,
    actor_id: str,
    full_name: str,
    headshot_url: Optional[str] = None,
) -> Player:
    """Put the actor into the active game, creating or updating their player record."""
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("Please enter your full name.")
    game = _active_game(store)
    player = store.upsert_player(actor_id, game.id, full_name, headshot_url or None)
    logger.info("Player %s joined game %s", actor_id, game.id)
    return player


def get_profile(store: GameStore, actor_id: str) -> Player:
    return _membership(store, actor_id, _active_game(store))


def cast_vote(
    store: GameStore,
    actor_id: str,
    round_id: str,
    target_id: Optional[str] = None,
    all_traitors_found: Optional[bool] = None,
) -> Union[Ballot, EndgameBallot]:
    """
    Record the actor's ballot for an active voting round.

    Targeted rounds take target_id, endgame votes take all_traitors_found.
    A repeated ballot raises AlreadyVotedError; the unique (round, voter)
    constraint enforces this even when two submissions race.
    """
    rnd = store.get_round(round_id)
    if rnd is None:
        raise NotFoundError("Round not found.")
    policy = policy_for(rnd.type)
    if not policy.accepts_ballots:
        raise ValidationError("This round does not take votes.")
    if rnd.status != RoundStatus.ACTIVE:
        raise ValidationError("This round is no longer open for voting.")

    voter = store.get_player(actor_id)
    if voter is None or voter.game_id != rnd.game_id:
        raise NotFoundError(NOT_IN_GAME)

    if policy.ballot_shape == BallotShape.ENDGAME:
        if store.has_ballot(rnd.id, voter.id):
            raise AlreadyVotedError("Your response for this end game vote has already been recorded.")
        check_voter(voter)
        if all_traitors_found is None:
            raise ValidationError("Please choose an option before voting.")
        ballot = EndgameBallot(round_id=rnd.id, voter_id=voter.id, all_traitors_found=all_traitors_found)
        store.insert_endgame_ballot(rnd.game_id, ballot)
        return ballot

    if store.has_ballot(rnd.id, voter.id):
        raise AlreadyVotedError()
    target = store.get_player(target_id) if target_id else None
    check_targeted_ballot(policy, voter, target)
    ballot = Ballot(
        round_id=rnd.id,
        voter_id=voter.id,
        target_id=target.id,
        kind=classify_ballot(policy, voter),
    )
    store.insert_ballot(ballot)
    return ballot


def voting_screen(store: GameStore, actor_id: str) -> VotingScreen:
    """The active voting round as the actor sees it, plus the last finished endgame vote."""
    game = _active_game(store)
    player = _membership(store, actor_id, game)
    screen = VotingScreen()

    rnd = store.find_round(game.id, types=VOTING_ROUND_TYPES, status=RoundStatus.ACTIVE)
    if rnd is not None:
        policy = policy_for(rnd.type)
        screen.round = rnd
        screen.has_voted = store.has_ballot(rnd.id, player.id)
        screen.shield_blocks_target = policy.shield_blocks_target
        if policy.ballot_shape == BallotShape.TARGETED:
            screen.targets = eligible_targets(player.id, store.list_players(game.id))

    last_endgame = store.find_round(game.id, types=[RoundType.ENDGAME_VOTE], status=RoundStatus.ENDED)
    if last_endgame is not None:
        screen.last_endgame_round = last_endgame
        screen.last_endgame_tally = tally_endgame(store.list_endgame_ballots(last_endgame.id))
    return screen


def reveal_screen(store: GameStore, actor_id: str) -> RevealScreen:
    """Results of the round the host last revealed. Killing votes keep two leaderboards."""
    game = _active_game(store)
    _membership(store, actor_id, game)
    if game.last_revealed_round is None:
        return RevealScreen()
    rnd = store.find_round(game.id, number=game.last_revealed_round)
    if rnd is None or not policy_for(rnd.type).revealable:
        return RevealScreen()
    tally = tally_round(rnd.type, store.list_ballots(rnd.id), store.list_players(game.id))
    return RevealScreen(round=rnd, tally=tally)


def minigame_screen(store: GameStore, actor_id: str) -> MinigameScreen:
    game = _active_game(store)
    player = _membership(store, actor_id, game)
    rnd = store.find_round(game.id, types=[RoundType.MINIGAME], status=RoundStatus.ACTIVE)
    if rnd is None:
        return MinigameScreen()
    assignment = store.get_group_assignment(rnd.id, player.id)
    return MinigameScreen(round=rnd, group_index=assignment.group_index if assignment else None)


def player_wall(store: GameStore, actor_id: str) -> list[Player]:
    game = _active_game(store)
    _membership(store, actor_id, game)
    return store.list_players(game.id)


def signals(store: GameStore) -> GameSignals:
    return GameSignals.from_game(_active_game(store))


def nudge(store: GameStore, cursor: PhaseCursor) -> tuple[Optional[Nudge], PhaseCursor]:
    """One poll of the phase watcher: compare the active game's signals with the client's cursor."""
    return next_nudge(signals(store), cursor)

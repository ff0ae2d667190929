"""Host operations: run the game and its rounds using the game engine and the store.

Every operation that changes a game first checks that the actor hosts it.
Signal writes that follow a primary change are best effort: a failure is
logged and the primary change is kept.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TypeVar, Union

from api.game_store import GameStore
from game.engine import (
    assign_roles as engine_assign_roles,
    check_endgame_start,
    check_group_request,
    evaluate_win_condition,
    group_players,
    pick_round_question,
    resolve_endgame,
    tally_endgame,
    tally_round,
)
from game.errors import ConflictError, NotFoundError, NotHostError, StoreError, ValidationError
from game.policies import TallyMode, policy_for
from game.rules import REVEALABLE_ROUND_TYPES, GameStatus, Role, RoundStatus, RoundType
from game.state import EndgameTally, Game, GroupAssignment, Outcome, Player, Round, RoundTally

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RoundClosure:
    """A closed round and, for endgame votes, how the vote was resolved."""

    round: Round
    outcome: Optional[Outcome] = None


@dataclass
class MinigameStart:
    round: Round
    groups: list[list[str]]  # groups[i] holds the player ids of group i + 1
    signal_version: int


def _best_effort(what: str, fn: Callable[..., T], *args, **kwargs) -> Optional[T]:
    """Run a secondary write; log and carry on if the store fails."""
    try:
        return fn(*args, **kwargs)
    except StoreError as e:
        logger.warning("Non-fatal: %s failed: %s", what, e.__cause__ or e)
        return None


def _require_game(store: GameStore, game_id: str) -> Game:
    game = store.get_game(game_id)
    if game is None:
        raise NotFoundError("Game not found.")
    return game


def _require_host(store: GameStore, actor_id: Optional[str], game_id: str) -> Game:
    game = _require_game(store, game_id)
    if not game.is_hosted_by(actor_id):
        logger.info("Actor %s is not the host of game %s; ignoring", actor_id, game_id)
        raise NotHostError()
    return game


def _require_round(store: GameStore, round_id: str) -> Round:
    rnd = store.get_round(round_id)
    if rnd is None:
        raise NotFoundError("Round not found.")
    return rnd


def _require_player(store: GameStore, game_id: str, player_id: str) -> Player:
    player = store.get_player(player_id)
    if player is None or player.game_id != game_id:
        raise NotFoundError("Player not found in this game.")
    return player


def _finish(store: GameStore, game: Game, outcome: Outcome) -> Outcome:
    store.set_game_status(game.id, GameStatus.ENDED)
    logger.info("Game %s ended, %s win", game.id, outcome.winner.value if outcome.winner else "no side")
    return outcome


# --- games -----------------------------------------------------------------


def create_game(store: GameStore, actor_id: str, name: str) -> Game:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Please enter a name for the game.")
    game = store.create_game(name, host=actor_id)
    logger.info("Game %s (%s) created by %s", game.id, game.name, actor_id)
    return game


def list_games(store: GameStore) -> list[Game]:
    return store.list_games()


def get_game(store: GameStore, game_id: str) -> Game:
    return _require_game(store, game_id)


def set_active(store: GameStore, actor_id: str, game_id: str) -> Game:
    """Make this the only active game; every other game is ended."""
    _require_host(store, actor_id, game_id)
    game = store.activate_game(game_id)
    if game is None:
        raise NotFoundError("Game not found.")
    logger.info("Game %s is now the active game", game_id)
    return game


def end_game(store: GameStore, actor_id: str, game_id: str) -> Game:
    _require_host(store, actor_id, game_id)
    store.set_game_status(game_id, GameStatus.ENDED)
    logger.info("Game %s ended by host", game_id)
    return _require_game(store, game_id)


def call_to_kitchen(store: GameStore, actor_id: str, game_id: str) -> int:
    """Bump the kitchen signal so players get sent to the kitchen screen. Returns the new version."""
    _require_host(store, actor_id, game_id)
    return store.bump_signal(game_id, "kitchen_signal_version")


# --- rounds ----------------------------------------------------------------


def _open_round(
    store: GameStore,
    game: Game,
    round_type: RoundType,
    rng: Optional[random.Random] = None,
) -> Round:
    rnd = store.open_round(game.id, round_type, question=pick_round_question(round_type, rng))
    logger.info("Round %s (%s) opened in game %s", rnd.round, rnd.type.value, game.id)
    if policy_for(round_type).signals_voting:
        _best_effort("updating cur_round_number", store.update_game, game.id, cur_round_number=rnd.round)
    return rnd


def start_round(
    store: GameStore,
    actor_id: str,
    game_id: str,
    round_type: RoundType,
    rng: Optional[random.Random] = None,
) -> Round:
    """
    Close any active round of the game and open a new one of round_type.
    Killing votes get their cover question here, drawn with rng.
    Minigames go through start_minigame; endgame votes through start_endgame_vote.
    """
    round_type = RoundType(round_type)
    if round_type == RoundType.MINIGAME:
        raise ValidationError("Minigame rounds are started with their group settings.")
    if round_type == RoundType.ENDGAME_VOTE:
        return start_endgame_vote(store, actor_id, game_id)
    game = _require_host(store, actor_id, game_id)
    return _open_round(store, game, round_type, rng)


def start_endgame_vote(store: GameStore, actor_id: str, game_id: str) -> Round:
    game = _require_host(store, actor_id, game_id)
    players = store.list_players(game_id)
    active_endgame = store.find_round(game_id, types=[RoundType.ENDGAME_VOTE], status=RoundStatus.ACTIVE)
    check_endgame_start(game, players, endgame_round_active=active_endgame is not None)
    return _open_round(store, game, RoundType.ENDGAME_VOTE)


def resolve_endgame_vote(store: GameStore, rnd: Round) -> Outcome:
    """Resolve a closed endgame vote, ending the game if the vote decides it."""
    game = _require_game(store, rnd.game_id)
    outcome = resolve_endgame(store.list_endgame_ballots(rnd.id), store.list_players(game.id))
    if outcome.game_over:
        return _finish(store, game, outcome)
    logger.info("Endgame vote in round %s did not end game %s: %s", rnd.round, game.id, outcome.message)
    return outcome


def close_round(store: GameStore, actor_id: str, round_id: str) -> RoundClosure:
    """End a round and run its type's exit effects (shield clearing, endgame resolution)."""
    rnd = _require_round(store, round_id)
    _require_host(store, actor_id, rnd.game_id)
    if rnd.status == RoundStatus.ENDED:
        raise ConflictError("This round has already been closed.")
    rnd = store.end_round(round_id) or rnd
    logger.info("Round %s (%s) closed in game %s", rnd.round, rnd.type.value, rnd.game_id)

    policy = policy_for(rnd.type)
    outcome = None
    if policy.clears_shields_on_close:
        cleared = _best_effort("clearing shields after killing vote", store.clear_shields, rnd.game_id)
        if cleared:
            logger.info("Cleared %s shields in game %s", cleared, rnd.game_id)
    if policy.resolves_endgame_on_close:
        outcome = resolve_endgame_vote(store, rnd)
    return RoundClosure(round=rnd, outcome=outcome)


def close_current_round(store: GameStore, actor_id: str, game_id: str) -> RoundClosure:
    _require_host(store, actor_id, game_id)
    active = store.find_round(game_id, status=RoundStatus.ACTIVE)
    if active is None:
        raise ValidationError("There is no active round to close.")
    return close_round(store, actor_id, active.id)


def reveal_latest_results(store: GameStore, actor_id: str, game_id: str) -> Round:
    """Point last_revealed_round at the newest finished banishment or killing vote."""
    _require_host(store, actor_id, game_id)
    latest = store.find_round(game_id, types=REVEALABLE_ROUND_TYPES, status=RoundStatus.ENDED)
    if latest is None:
        raise ValidationError("There is no completed voting round to reveal yet.")
    store.update_game(game_id, last_revealed_round=latest.round)
    logger.info("Results of round %s revealed in game %s", latest.round, game_id)
    return latest


def list_rounds(store: GameStore, actor_id: str, game_id: str) -> list[Round]:
    _require_host(store, actor_id, game_id)
    return store.list_rounds(game_id)


def round_results(store: GameStore, actor_id: str, round_id: str) -> Union[RoundTally, EndgameTally]:
    """Host view of a round's votes."""
    rnd = _require_round(store, round_id)
    _require_host(store, actor_id, rnd.game_id)
    mode = policy_for(rnd.type).tally_mode
    if mode == TallyMode.YES_NO:
        return tally_endgame(store.list_endgame_ballots(rnd.id))
    if mode == TallyMode.NONE:
        raise ValidationError("This round has no votes to show.")
    return tally_round(rnd.type, store.list_ballots(rnd.id), store.list_players(rnd.game_id))


# --- minigames -------------------------------------------------------------


def start_minigame(
    store: GameStore,
    actor_id: str,
    game_id: str,
    group_count: int,
    balanced: bool = True,
    sizes: Optional[Sequence[int]] = None,
    rng: Optional[random.Random] = None,
) -> MinigameStart:
    """
    Open a minigame round and split the living players into group_count groups,
    round-robin when balanced, otherwise by the host's explicit sizes.
    The request is validated before anything is written.
    """
    game = _require_host(store, actor_id, game_id)
    players = store.list_players(game_id, eliminated=False)
    if not balanced and sizes is None:
        raise ValidationError(f"Please provide exactly {group_count} group sizes.")
    check_group_request(group_count, len(players), None if balanced else sizes)

    rnd = store.open_round(game_id, RoundType.MINIGAME)
    logger.info("Minigame round %s opened in game %s with %s groups", rnd.round, game.id, group_count)
    groups = group_players([p.id for p in players], group_count, balanced=balanced, sizes=sizes, rng=rng)
    store.insert_group_assignments(
        [
            GroupAssignment(game_id=game_id, round_id=rnd.id, player_id=player_id, group_index=index + 1)
            for index, group in enumerate(groups)
            for player_id in group
        ]
    )
    version = store.bump_signal(game_id, "minigame_signal_version")
    return MinigameStart(round=rnd, groups=groups, signal_version=version)


def mark_minigame_winning_group(store: GameStore, actor_id: str, round_id: str, group_index: int) -> Round:
    rnd = _require_round(store, round_id)
    _require_host(store, actor_id, rnd.game_id)
    if rnd.type != RoundType.MINIGAME:
        raise ValidationError("Only minigame rounds have a winning group.")
    if group_index < 1:
        raise ValidationError("Please enter a valid group number (1 or higher).")
    if not store.group_exists(round_id, group_index):
        raise ValidationError(f"No players were assigned to group {group_index} for this round.")
    updated = store.end_round(round_id, winning_group_index=group_index)
    logger.info("Group %s won minigame round %s in game %s", group_index, rnd.round, rnd.game_id)
    return updated or rnd


# --- roles, eliminations, shields ------------------------------------------


def assign_roles(
    store: GameStore,
    actor_id: str,
    game_id: str,
    rng: Optional[random.Random] = None,
) -> dict[str, Role]:
    """Randomly assign traitor/faithful to the living players and reveal roles."""
    _require_host(store, actor_id, game_id)
    roles = engine_assign_roles(store.list_players(game_id, eliminated=False), rng)
    store.set_roles(game_id, roles)
    _best_effort("marking roles revealed", store.update_game, game_id, roles_revealed=True)
    logger.info(
        "Assigned roles in game %s: %s traitors, %s faithful",
        game_id,
        sum(1 for r in roles.values() if r == Role.TRAITOR),
        sum(1 for r in roles.values() if r == Role.FAITHFUL),
    )
    return roles


def clear_roles(store: GameStore, actor_id: str, game_id: str) -> None:
    _require_host(store, actor_id, game_id)
    store.clear_roles(game_id)
    _best_effort("resetting roles_revealed", store.update_game, game_id, roles_revealed=False)
    logger.info("Cleared roles in game %s", game_id)


def check_win_condition(store: GameStore, game_id: str) -> Optional[Outcome]:
    """End the game if the living players decide it. Returns the outcome, or None if play goes on."""
    game = _require_game(store, game_id)
    outcome = evaluate_win_condition(game, store.list_players(game_id))
    if outcome is None:
        return None
    return _finish(store, game, outcome)


def run_win_check(store: GameStore, actor_id: str, game_id: str) -> Optional[Outcome]:
    _require_host(store, actor_id, game_id)
    return check_win_condition(store, game_id)


def eliminate_player(store: GameStore, actor_id: str, game_id: str, player_id: str) -> Optional[Outcome]:
    """Eliminate a player (usually from round results), then check whether the game is over."""
    _require_host(store, actor_id, game_id)
    _require_player(store, game_id, player_id)
    store.set_eliminated(game_id, player_id, True)
    logger.info("Player %s eliminated in game %s", player_id, game_id)
    return check_win_condition(store, game_id)


def list_players(store: GameStore, actor_id: str, game_id: str) -> list[Player]:
    _require_host(store, actor_id, game_id)
    return store.list_players(game_id)


def grant_shield(store: GameStore, actor_id: str, game_id: str, player_id: str) -> Player:
    game = _require_host(store, actor_id, game_id)
    player = _require_player(store, game_id, player_id)
    if player.has_shield:
        raise ConflictError("That player already holds a shield.")
    if not store.grant_shield(game_id, player_id, game.shield_points_threshold):
        raise ValidationError(
            f"There are already {game.shield_points_threshold} active shields. "
            "Remove one before assigning another."
        )
    return _require_player(store, game_id, player_id)


def revoke_shield(store: GameStore, actor_id: str, game_id: str, player_id: str) -> Player:
    _require_host(store, actor_id, game_id)
    _require_player(store, game_id, player_id)
    store.revoke_shield(game_id, player_id)
    return _require_player(store, game_id, player_id)

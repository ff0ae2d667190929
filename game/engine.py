"""Game engine: pure rules for roles, tallies, win checks and grouping. No storage."""

import random
from collections import Counter
from typing import Iterable, Optional, Sequence, TypeVar

from game.errors import ConflictError, ValidationError
from game.policies import TallyMode, policy_for
from game.rules import (
    ENDGAME_MAX_LIVING_PLAYERS,
    KILLING_ROUND_QUESTIONS,
    MAX_MINIGAME_GROUPS,
    MIN_MINIGAME_GROUPS,
    TRAITOR_QUOTA,
    GameStatus,
    Role,
    RoundType,
    VoteKind,
    Winner,
)
from game.state import (
    Ballot,
    EndgameBallot,
    EndgameTally,
    Game,
    Outcome,
    Player,
    RoundTally,
    TallyEntry,
)

T = TypeVar("T")


def shuffled(items: Sequence[T], rng: Optional[random.Random] = None) -> list[T]:
    """Return a uniformly shuffled copy of items (Fisher-Yates). Pass rng for determinism."""
    rng = rng or random.Random()
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randrange(i + 1)
        out[i], out[j] = out[j], out[i]
    return out


def next_round_number(existing: Iterable[Optional[int]]) -> int:
    """max(existing) + 1, or 1 for a game without rounds."""
    numbers = [n for n in existing if n is not None]
    return max(numbers) + 1 if numbers else 1


def pick_round_question(round_type: RoundType, rng: Optional[random.Random] = None) -> Optional[str]:
    """A cover question for rounds that show one, else None. Chosen once when the round opens."""
    if not policy_for(round_type).asks_cover_question:
        return None
    rng = rng or random.Random()
    return KILLING_ROUND_QUESTIONS[rng.randrange(len(KILLING_ROUND_QUESTIONS))]


# --- roles -----------------------------------------------------------------


def assign_roles(players: Sequence[Player], rng: Optional[random.Random] = None) -> dict[str, Role]:
    """
    Assign hidden roles to the non-eliminated players.
    The first min(TRAITOR_QUOTA, total) of a uniform shuffle become traitors, the rest faithful.
    """
    active = [p.id for p in players if p.alive]
    if not active:
        raise ValidationError("No active players to assign roles to.")
    order = shuffled(active, rng)
    traitor_count = min(TRAITOR_QUOTA, len(order))
    roles = {pid: Role.TRAITOR for pid in order[:traitor_count]}
    roles.update({pid: Role.FAITHFUL for pid in order[traitor_count:]})
    return roles


def _count(players: Iterable[Player], role: Role, living_only: bool = False) -> int:
    return sum(1 for p in players if p.role == role and (p.alive or not living_only))


def evaluate_win_condition(game: Game, players: Sequence[Player]) -> Optional[Outcome]:
    """Return the winning Outcome if the living players decide the game, else None.

    Only active games are evaluated. A game without any traitor has not had
    roles assigned yet and is never decided.
    """
    if game.status != GameStatus.ACTIVE:
        return None
    if _count(players, Role.TRAITOR) == 0:
        return None
    if not any(p.alive for p in players):
        return None
    if _count(players, Role.TRAITOR, living_only=True) == 0:
        return Outcome(
            "Game ended: all Traitors have been eliminated. Faithful win.",
            winner=Winner.FAITHFUL,
        )
    if _count(players, Role.FAITHFUL, living_only=True) == 0:
        return Outcome("Game ended: only Traitors remain. Traitors win.", winner=Winner.TRAITORS)
    return None


# --- tallies ---------------------------------------------------------------


def tally_ballots(
    ballots: Iterable[Ballot],
    players: Optional[Sequence[Player]] = None,
    kind: Optional[VoteKind] = None,
) -> list[TallyEntry]:
    """
    Count ballots per target, most votes first. Ties are ordered by target id.
    If kind is given only ballots of that kind are counted.
    """
    counts = Counter(b.target_id for b in ballots if kind is None or b.kind == kind)
    by_id = {p.id: p for p in players or ()}
    entries = []
    for target_id, votes in counts.items():
        player = by_id.get(target_id)
        entries.append(
            TallyEntry(
                target_id=target_id,
                votes=votes,
                full_name=player.full_name if player else None,
                eliminated=player.eliminated if player else False,
            )
        )
    entries.sort(key=lambda e: (-e.votes, e.target_id))
    return entries


def tally_round(
    round_type: RoundType,
    ballots: Sequence[Ballot],
    players: Optional[Sequence[Player]] = None,
) -> RoundTally:
    """Tally a targeted round according to its policy."""
    mode = policy_for(round_type).tally_mode
    if mode == TallyMode.SPLIT:
        return RoundTally(
            round_type=RoundType(round_type),
            standard=tally_ballots(ballots, players, kind=VoteKind.STANDARD),
            kill=tally_ballots(ballots, players, kind=VoteKind.KILL),
        )
    if mode == TallyMode.STANDARD:
        return RoundTally(
            round_type=RoundType(round_type),
            standard=tally_ballots(ballots, players, kind=VoteKind.STANDARD),
        )
    raise ValidationError(f"Rounds of type {RoundType(round_type).value} have no targeted tally.")


def tally_endgame(ballots: Iterable[EndgameBallot]) -> EndgameTally:
    yes = no = 0
    for b in ballots:
        if b.all_traitors_found:
            yes += 1
        else:
            no += 1
    return EndgameTally(yes=yes, no=no)


# --- endgame ---------------------------------------------------------------


def resolve_endgame(ballots: Sequence[EndgameBallot], players: Sequence[Player]) -> Outcome:
    """
    Decide a closed endgame vote. A strict majority of "all traitors found" ends the
    game; the answer is then checked against the living traitors. Anything else
    continues the game.
    """
    if not ballots:
        return Outcome("No end game votes have been recorded yet. The game will continue.")
    result = tally_endgame(ballots)
    if result.yes <= result.no:
        return Outcome("Players voted that not all Traitors have been found. The game continues.")
    if _count(players, Role.TRAITOR) == 0:
        return Outcome(
            "End game vote could not be resolved because no Traitors are defined for this game."
        )
    if _count(players, Role.TRAITOR, living_only=True) == 0:
        return Outcome(
            "Game ended: players correctly found all Traitors. Faithful win.",
            winner=Winner.FAITHFUL,
        )
    return Outcome(
        "Game ended: players were wrong, Traitors remain. Traitors win.",
        winner=Winner.TRAITORS,
    )


def check_endgame_start(game: Game, players: Sequence[Player], endgame_round_active: bool) -> None:
    """Raise unless an endgame vote may be opened now."""
    if game.status != GameStatus.ACTIVE:
        raise ValidationError("End game vote is only available while the game is active.")
    if sum(1 for p in players if p.alive) > ENDGAME_MAX_LIVING_PLAYERS:
        raise ValidationError(
            f"End game vote is intended for {ENDGAME_MAX_LIVING_PLAYERS} or fewer remaining "
            "players. Eliminate more players first."
        )
    if _count(players, Role.TRAITOR) == 0:
        raise ValidationError(
            "Cannot start an end game vote because no Traitors are defined for this game."
        )
    if endgame_round_active:
        raise ConflictError("An end game vote round is already active.")


# --- minigame groups -------------------------------------------------------


def check_group_request(group_count: int, total_players: int, sizes: Optional[Sequence[int]] = None) -> None:
    """Raise ValidationError unless group_count (and sizes, if given) can split total_players."""
    if not MIN_MINIGAME_GROUPS <= group_count <= MAX_MINIGAME_GROUPS:
        raise ValidationError(
            f"Please enter a number of groups between {MIN_MINIGAME_GROUPS} and {MAX_MINIGAME_GROUPS}."
        )
    if total_players == 0:
        raise ValidationError("No active players available for minigame.")
    if sizes is None:
        return
    if len(sizes) != group_count:
        raise ValidationError(f"Please provide exactly {group_count} group sizes.")
    if any(size < 1 for size in sizes):
        raise ValidationError("Each group size must be a positive whole number.")
    if sum(sizes) != total_players:
        raise ValidationError(
            f"Group sizes must add up to {total_players} (currently {sum(sizes)})."
        )


def balanced_groups(player_ids: Sequence[str], group_count: int) -> list[list[str]]:
    """Round-robin: sizes differ by at most one."""
    groups: list[list[str]] = [[] for _ in range(group_count)]
    for index, player_id in enumerate(player_ids):
        groups[index % group_count].append(player_id)
    return groups


def sized_groups(player_ids: Sequence[str], sizes: Sequence[int]) -> list[list[str]]:
    """Contiguous slices of player_ids with the given sizes, in order."""
    groups = []
    cursor = 0
    for size in sizes:
        groups.append(list(player_ids[cursor:cursor + size]))
        cursor += size
    return groups


def group_players(
    player_ids: Sequence[str],
    group_count: int,
    balanced: bool = True,
    sizes: Optional[Sequence[int]] = None,
    rng: Optional[random.Random] = None,
) -> list[list[str]]:
    """
    Shuffle players and split them into group_count groups. Group i of the result
    is group number i + 1. Manual mode (balanced=False) requires explicit sizes.
    """
    if not balanced and sizes is None:
        raise ValidationError(f"Please provide exactly {group_count} group sizes.")
    check_group_request(group_count, len(player_ids), None if balanced else sizes)
    order = shuffled(player_ids, rng)
    if balanced:
        return balanced_groups(order, group_count)
    return sized_groups(order, sizes)

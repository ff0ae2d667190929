"""Unit tests for the game engine."""

import random
from collections import Counter

import pytest
from game.engine import (
    assign_roles,
    balanced_groups,
    check_endgame_start,
    check_group_request,
    evaluate_win_condition,
    group_players,
    next_round_number,
    pick_round_question,
    resolve_endgame,
    shuffled,
    tally_ballots,
    tally_endgame,
    tally_round,
)
from game.errors import ConflictError, ValidationError
from game.rules import KILLING_ROUND_QUESTIONS, GameStatus, Role, RoundType, VoteKind, Winner
from game.state import Ballot, EndgameBallot, Game, Player


def _game(status: GameStatus = GameStatus.ACTIVE) -> Game:
    return Game(id="g1", name="Castle", status=status, host="host")


def _player(pid: str, role: Role | None = None, eliminated: bool = False, name: str | None = None) -> Player:
    return Player(id=pid, game_id="g1", full_name=name or pid.upper(), role=role, eliminated=eliminated)


def _yes_no(yes: int, no: int) -> list[EndgameBallot]:
    ballots = [EndgameBallot("r1", f"y{i}", True) for i in range(yes)]
    return ballots + [EndgameBallot("r1", f"n{i}", False) for i in range(no)]


def test_shuffled_is_permutation_and_deterministic():
    items = list(range(20))
    a = shuffled(items, random.Random(7))
    b = shuffled(items, random.Random(7))
    assert a == b
    assert sorted(a) == items
    assert items == list(range(20))  # input untouched


def test_next_round_number():
    assert next_round_number([]) == 1
    assert next_round_number([1, 2, 5]) == 6
    assert next_round_number([None, 3]) == 4


def test_pick_round_question_killing_vote_only():
    q = pick_round_question(RoundType.KILLING_VOTE, random.Random(5))
    assert q in KILLING_ROUND_QUESTIONS
    assert pick_round_question(RoundType.KILLING_VOTE, random.Random(5)) == q
    assert pick_round_question(RoundType.BANISHMENT_VOTE, random.Random(5)) is None
    assert pick_round_question(RoundType.MINIGAME) is None


def test_assign_roles_quota_small_game():
    players = [_player(f"p{i}") for i in range(2)]
    roles = assign_roles(players, random.Random(1))
    assert all(r == Role.TRAITOR for r in roles.values())
    assert len(roles) == 2


def test_assign_roles_quota_large_game():
    players = [_player(f"p{i}") for i in range(10)]
    roles = assign_roles(players, random.Random(1))
    counts = Counter(roles.values())
    assert counts[Role.TRAITOR] == 3
    assert counts[Role.FAITHFUL] == 7


def test_assign_roles_skips_eliminated():
    players = [_player("a"), _player("b", eliminated=True), _player("c"), _player("d"), _player("e")]
    roles = assign_roles(players, random.Random(3))
    assert "b" not in roles
    assert len(roles) == 4


def test_assign_roles_no_players_raises():
    with pytest.raises(ValidationError):
        assign_roles([_player("a", eliminated=True)])


def test_assign_roles_every_player_can_be_traitor():
    players = [_player(f"p{i}") for i in range(6)]
    rng = random.Random(11)
    seen = set()
    for _ in range(200):
        roles = assign_roles(players, rng)
        seen.update(pid for pid, r in roles.items() if r == Role.TRAITOR)
    assert seen == {p.id for p in players}


def test_win_faithful_when_no_living_traitors():
    players = [
        _player("t1", Role.TRAITOR, eliminated=True),
        _player("f1", Role.FAITHFUL),
        _player("f2", Role.FAITHFUL),
    ]
    outcome = evaluate_win_condition(_game(), players)
    assert outcome.winner == Winner.FAITHFUL
    assert outcome.game_over


def test_win_traitors_when_no_living_faithful():
    players = [
        _player("t1", Role.TRAITOR),
        _player("f1", Role.FAITHFUL, eliminated=True),
    ]
    outcome = evaluate_win_condition(_game(), players)
    assert outcome.winner == Winner.TRAITORS


def test_win_undecided_while_both_sides_alive():
    players = [_player("t1", Role.TRAITOR), _player("f1", Role.FAITHFUL)]
    assert evaluate_win_condition(_game(), players) is None


def test_win_ignores_game_without_roles():
    players = [_player("a", eliminated=True), _player("b")]
    assert evaluate_win_condition(_game(), players) is None


def test_win_only_checked_for_active_games():
    players = [_player("t1", Role.TRAITOR, eliminated=True), _player("f1", Role.FAITHFUL)]
    assert evaluate_win_condition(_game(GameStatus.PENDING), players) is None
    assert evaluate_win_condition(_game(GameStatus.ENDED), players) is None


def test_tally_orders_by_votes_then_target_id():
    ballots = [
        Ballot("r1", "v1", "b"),
        Ballot("r1", "v2", "a"),
        Ballot("r1", "v3", "c"),
        Ballot("r1", "v4", "c"),
    ]
    entries = tally_ballots(ballots, [_player("a", name="Ann"), _player("c", name="Cy")])
    assert [(e.target_id, e.votes) for e in entries] == [("c", 2), ("a", 1), ("b", 1)]
    assert entries[0].full_name == "Cy"
    assert entries[2].full_name is None


def test_killing_tally_keeps_kill_votes_separate():
    ballots = [
        Ballot("r1", "t1", "a", VoteKind.KILL),
        Ballot("r1", "t2", "a", VoteKind.KILL),
        Ballot("r1", "f1", "b"),
        Ballot("r1", "f2", "a"),
    ]
    tally = tally_round(RoundType.KILLING_VOTE, ballots)
    assert [(e.target_id, e.votes) for e in tally.kill] == [("a", 2)]
    assert [(e.target_id, e.votes) for e in tally.standard] == [("a", 1), ("b", 1)]


def test_banishment_tally_counts_standard_only():
    ballots = [Ballot("r1", "v1", "a"), Ballot("r1", "v2", "b", VoteKind.KILL)]
    tally = tally_round(RoundType.BANISHMENT_VOTE, ballots)
    assert tally.kill is None
    assert [e.target_id for e in tally.standard] == ["a"]


def test_tally_round_rejects_non_voting_round():
    with pytest.raises(ValidationError):
        tally_round(RoundType.BREAKFAST, [])


def test_tally_endgame_counts():
    result = tally_endgame(_yes_no(3, 2))
    assert (result.yes, result.no, result.total) == (3, 2, 5)


def test_resolve_endgame_no_ballots_continues():
    outcome = resolve_endgame([], [_player("t1", Role.TRAITOR)])
    assert not outcome.game_over


def test_resolve_endgame_tie_continues():
    outcome = resolve_endgame(_yes_no(2, 2), [_player("t1", Role.TRAITOR)])
    assert not outcome.game_over
    assert "continues" in outcome.message


def test_resolve_endgame_wrong_guess_traitors_win():
    players = [_player("t1", Role.TRAITOR), _player("f1", Role.FAITHFUL)]
    outcome = resolve_endgame(_yes_no(3, 1), players)
    assert outcome.winner == Winner.TRAITORS


def test_resolve_endgame_correct_guess_faithful_win():
    players = [_player("t1", Role.TRAITOR, eliminated=True), _player("f1", Role.FAITHFUL)]
    outcome = resolve_endgame(_yes_no(2, 1), players)
    assert outcome.winner == Winner.FAITHFUL


def test_resolve_endgame_without_traitors_cannot_resolve():
    outcome = resolve_endgame(_yes_no(3, 0), [_player("a"), _player("b")])
    assert not outcome.game_over
    assert "could not be resolved" in outcome.message


def test_check_endgame_start_preconditions():
    four = [_player("t1", Role.TRAITOR)] + [_player(f"f{i}", Role.FAITHFUL) for i in range(3)]
    check_endgame_start(_game(), four, endgame_round_active=False)

    five = four + [_player("f9", Role.FAITHFUL)]
    with pytest.raises(ValidationError):
        check_endgame_start(_game(), five, endgame_round_active=False)
    with pytest.raises(ValidationError):
        check_endgame_start(_game(GameStatus.PENDING), four, endgame_round_active=False)
    with pytest.raises(ValidationError):
        check_endgame_start(_game(), [_player("a"), _player("b")], endgame_round_active=False)
    with pytest.raises(ConflictError):
        check_endgame_start(_game(), four, endgame_round_active=True)


def test_endgame_start_counts_only_living_players():
    players = [_player("t1", Role.TRAITOR)] + [_player(f"f{i}", Role.FAITHFUL) for i in range(3)]
    players += [_player(f"x{i}", Role.FAITHFUL, eliminated=True) for i in range(5)]
    check_endgame_start(_game(), players, endgame_round_active=False)


def test_balanced_groups_sizes_differ_by_at_most_one():
    ids = [f"p{i}" for i in range(7)]
    groups = balanced_groups(ids, 3)
    assert [len(g) for g in groups] == [3, 2, 2]
    assert groups[0] == ["p0", "p3", "p6"]


def test_group_players_balanced_covers_everyone_once():
    ids = [f"p{i}" for i in range(10)]
    groups = group_players(ids, 4, rng=random.Random(5))
    flat = [pid for g in groups for pid in g]
    assert sorted(flat) == sorted(ids)
    sizes = [len(g) for g in groups]
    assert max(sizes) - min(sizes) <= 1


def test_group_players_manual_sizes():
    ids = [f"p{i}" for i in range(6)]
    groups = group_players(ids, 2, balanced=False, sizes=[4, 2], rng=random.Random(2))
    assert [len(g) for g in groups] == [4, 2]


def test_group_players_manual_requires_sizes():
    with pytest.raises(ValidationError):
        group_players(["a", "b", "c"], 2, balanced=False)


@pytest.mark.parametrize(
    "group_count,total,sizes",
    [
        (1, 5, None),
        (7, 10, None),
        (2, 0, None),
        (2, 5, [3]),
        (2, 5, [5, 0]),
        (2, 5, [2, 2]),
    ],
)
def test_check_group_request_rejects(group_count, total, sizes):
    with pytest.raises(ValidationError):
        check_group_request(group_count, total, sizes)

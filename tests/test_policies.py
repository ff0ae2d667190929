"""Tests for per-round-type ballot rules."""

import pytest
from game.errors import ValidationError
from game.policies import (
    BallotShape,
    TallyMode,
    check_targeted_ballot,
    classify_ballot,
    eligible_targets,
    policy_for,
)
from game.rules import Role, RoundType, VoteKind
from game.state import Player


def _player(pid: str, **kwargs) -> Player:
    kwargs.setdefault("game_id", "g1")
    kwargs.setdefault("full_name", pid.upper())
    return Player(id=pid, **kwargs)


def test_every_round_type_has_a_policy():
    for round_type in RoundType:
        assert policy_for(round_type).round_type == round_type


def test_only_voting_rounds_accept_ballots():
    accepting = {t for t in RoundType if policy_for(t).accepts_ballots}
    assert accepting == {RoundType.BANISHMENT_VOTE, RoundType.KILLING_VOTE, RoundType.ENDGAME_VOTE}
    assert policy_for(RoundType.ENDGAME_VOTE).ballot_shape == BallotShape.ENDGAME
    assert policy_for(RoundType.KILLING_VOTE).tally_mode == TallyMode.SPLIT


def test_revealable_rounds():
    revealable = {t for t in RoundType if policy_for(t).revealable}
    assert revealable == {RoundType.BANISHMENT_VOTE, RoundType.KILLING_VOTE}


def test_traitor_ballot_is_kill_only_in_killing_vote():
    traitor = _player("t", role=Role.TRAITOR)
    faithful = _player("f", role=Role.FAITHFUL)
    killing = policy_for(RoundType.KILLING_VOTE)
    assert classify_ballot(killing, traitor) == VoteKind.KILL
    assert classify_ballot(killing, faithful) == VoteKind.STANDARD
    assert classify_ballot(policy_for(RoundType.BANISHMENT_VOTE), traitor) == VoteKind.STANDARD


def test_eliminated_voter_rejected_first():
    voter = _player("v", eliminated=True)
    with pytest.raises(ValidationError, match="eliminated"):
        check_targeted_ballot(policy_for(RoundType.BANISHMENT_VOTE), voter, voter)


def test_shield_blocks_killing_vote_target():
    voter = _player("v")
    shielded = _player("s", has_shield=True)
    with pytest.raises(ValidationError, match="shield"):
        check_targeted_ballot(policy_for(RoundType.KILLING_VOTE), voter, shielded)
    check_targeted_ballot(policy_for(RoundType.BANISHMENT_VOTE), voter, shielded)


def test_self_vote_rejected():
    voter = _player("v")
    with pytest.raises(ValidationError, match="yourself"):
        check_targeted_ballot(policy_for(RoundType.BANISHMENT_VOTE), voter, voter)


def test_target_must_be_living_player_of_same_game():
    voter = _player("v")
    policy = policy_for(RoundType.BANISHMENT_VOTE)
    with pytest.raises(ValidationError):
        check_targeted_ballot(policy, voter, _player("x", eliminated=True))
    with pytest.raises(ValidationError):
        check_targeted_ballot(policy, voter, _player("y", game_id="other"))
    with pytest.raises(ValidationError):
        check_targeted_ballot(policy, voter, None)


def test_eligible_targets_excludes_self_and_eliminated():
    players = [
        _player("v", full_name="Vic"),
        _player("a", full_name="Zed"),
        _player("b", full_name="Amy"),
        _player("c", full_name="Bo", eliminated=True),
    ]
    assert [p.id for p in eligible_targets("v", players)] == ["b", "a"]


def test_only_killing_vote_asks_cover_question():
    asking = [rt for rt in RoundType if policy_for(rt).asks_cover_question]
    assert asking == [RoundType.KILLING_VOTE]

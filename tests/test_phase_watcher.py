"""Tests for turning game signals into one-shot navigation nudges."""

from game.phase_watcher import Channel, GameSignals, PhaseCursor, next_nudge
from game.rules import GameStatus
from game.state import Game


def _signals(**kwargs) -> GameSignals:
    return GameSignals(game_id="g1", **kwargs)


def _drain(signals: GameSignals, cursor: PhaseCursor) -> tuple[list[Channel], PhaseCursor]:
    """Poll until no more nudges; returns channels in the order they fired."""
    fired = []
    for _ in range(10):
        nudge, cursor = next_nudge(signals, cursor)
        if nudge is None:
            break
        fired.append(nudge.channel)
    return fired, cursor


def test_fresh_client_sees_round_and_reveal_but_not_counters():
    signals = _signals(cur_round_number=3, last_revealed_round=2, kitchen_signal_version=4, minigame_signal_version=1)
    fired, cursor = _drain(signals, PhaseCursor())
    assert fired == [Channel.VOTING, Channel.REVEAL]
    assert cursor.kitchen_version == 4
    assert cursor.minigame_version == 1


def test_each_change_nudges_once():
    cursor = PhaseCursor(round_number=1, kitchen_version=0, minigame_version=0)
    signals = _signals(cur_round_number=2, kitchen_signal_version=0)
    nudge, cursor = next_nudge(signals, cursor)
    assert nudge.channel == Channel.VOTING
    assert nudge.destination == "/voting"
    nudge, cursor = next_nudge(signals, cursor)
    assert nudge is None


def test_kitchen_increase_nudges():
    cursor = PhaseCursor(kitchen_version=2, minigame_version=0)
    nudge, cursor = next_nudge(_signals(kitchen_signal_version=3), cursor)
    assert nudge.channel == Channel.KITCHEN
    assert nudge.destination == "/kitchen"
    assert cursor.kitchen_version == 3


def test_missed_polls_reconcile_from_absolute_values():
    cursor = PhaseCursor(minigame_version=1, kitchen_version=0)
    nudge, cursor = next_nudge(_signals(minigame_signal_version=5), cursor)
    assert nudge.channel == Channel.MINIGAME
    assert cursor.minigame_version == 5


def test_roles_nudge_has_priority_and_rearms_after_clear():
    signals = _signals(roles_revealed=True, cur_round_number=1)
    nudge, cursor = next_nudge(signals, PhaseCursor())
    assert nudge.channel == Channel.ROLES
    assert nudge.destination == "/profile"

    nudge, cursor = next_nudge(signals, cursor)
    assert nudge.channel == Channel.VOTING

    cleared = _signals(roles_revealed=False, cur_round_number=1)
    nudge, cursor = next_nudge(cleared, cursor)
    assert nudge is None
    assert cursor.roles_revealed is False

    nudge, cursor = next_nudge(signals, cursor)
    assert nudge.channel == Channel.ROLES


def test_signals_from_game():
    game = Game(
        id="g1",
        name="Castle",
        status=GameStatus.ACTIVE,
        cur_round_number=4,
        last_revealed_round=3,
        kitchen_signal_version=2,
    )
    signals = GameSignals.from_game(game)
    assert signals.cur_round_number == 4
    assert signals.last_revealed_round == 3
    assert signals.kitchen_signal_version == 2
    assert signals.minigame_signal_version == 0

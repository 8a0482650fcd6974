from tictactoe_rl.game_basics import PLAYER_O, PLAYER_X, deserialize_board
from tictactoe_rl.tactics import (
    blocking_moves,
    fork_moves,
    gives_opponent_immediate_win,
    immediate_winning_moves,
    safe_moves,
)


def test_immediate_wins_and_blocks():
    b = deserialize_board("110220000")
    assert immediate_winning_moves(b, PLAYER_X) == [2]
    assert immediate_winning_moves(b, PLAYER_O) == [5]
    assert blocking_moves(b, PLAYER_O) == [2]


def test_no_wins_reported_on_finished_board():
    assert immediate_winning_moves(deserialize_board("111220000"), PLAYER_O) == []


def test_fork_detection():
    # X on two corners sharing column 0; 8 threatens 3 and 7 at once
    b = deserialize_board("100020100")
    forks = fork_moves(b, PLAYER_X)
    assert 8 in forks
    assert 3 not in forks  # wins outright


def test_handing_over_a_win_and_safe_moves():
    # O threatens 5 on the middle row
    b = deserialize_board("001220100")
    assert gives_opponent_immediate_win(b, PLAYER_X, 0)
    assert not gives_opponent_immediate_win(b, PLAYER_X, 5)
    assert safe_moves(b, PLAYER_X) == [5]


def test_winning_move_never_hands_over_a_win():
    b = deserialize_board("110220000")
    assert not gives_opponent_immediate_win(b, PLAYER_X, 2)
    assert 2 in safe_moves(b, PLAYER_X)

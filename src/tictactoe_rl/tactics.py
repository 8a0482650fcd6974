"""
One-ply tactics: wins, blocks, forks and blunder checks.

The evaluation arena builds its scripted opponents from these motifs and uses
``gives_opponent_immediate_win`` / ``safe_moves`` to count the avoidable
blunders of a trained table. All helpers take the side they reason for as
``player`` and return cells in ascending order.
"""
from typing import List

from .game_basics import EMPTY, WIN_PATTERNS, get_winner, opponent


def _completing_cells(board: List[int], player: int) -> List[int]:
    """Empty cells that would complete a line already holding two ``player`` marks."""
    cells = set()
    for pattern in WIN_PATTERNS:
        marks = [board[i] for i in pattern]
        if marks.count(player) == 2 and marks.count(EMPTY) == 1:
            cells.add(pattern[marks.index(EMPTY)])
    return sorted(cells)


def _with_move(board: List[int], cell: int, player: int) -> List[int]:
    b = board[:]
    b[cell] = player
    return b


def immediate_winning_moves(board: List[int], player: int) -> List[int]:
    if get_winner(board) is not None:
        return []
    return _completing_cells(board, player)


def blocking_moves(board: List[int], player: int) -> List[int]:
    """Cells that stop the opponent's immediate wins."""
    return immediate_winning_moves(board, opponent(player))


def fork_moves(board: List[int], player: int) -> List[int]:
    """Moves that leave two or more winning threats at once."""
    return [
        i for i, v in enumerate(board)
        if v == EMPTY and len(immediate_winning_moves(_with_move(board, i, player), player)) >= 2
    ]


def gives_opponent_immediate_win(board: List[int], player: int, move: int) -> bool:
    if board[move] != EMPTY:
        return False
    after = _with_move(board, move, player)
    if get_winner(after) is not None:
        return False
    return bool(immediate_winning_moves(after, opponent(player)))


def safe_moves(board: List[int], player: int) -> List[int]:
    """Legal moves that do not hand the opponent an immediate win."""
    return [
        i for i, v in enumerate(board)
        if v == EMPTY and not gives_opponent_immediate_win(board, player, i)
    ]

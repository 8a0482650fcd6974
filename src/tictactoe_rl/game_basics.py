"""
Game basics: board representation, serialization, rules, winner/draw checks, validity.
Teaching notes:
- State is a list of 9 cells: 0=empty, 1=X, 2=O. X always starts.
- The serialized board (9 digits, row-major) is the key of the agent's value table.
- Winner detection always runs before draw detection: a full board with a
  completed line is a win, not a draw.
"""
from typing import List, Optional, Tuple

EMPTY = 0
PLAYER_X = 1
PLAYER_O = 2

SYMBOLS = {EMPTY: '.', PLAYER_X: 'X', PLAYER_O: 'O'}

# Scan order matters when a (non-reachable) board holds two completed lines of
# different marks: the first line in this order decides the winner.
WIN_PATTERNS = [
    [0, 1, 2], [3, 4, 5], [6, 7, 8],
    [0, 3, 6], [1, 4, 7], [2, 5, 8],
    [0, 4, 8], [2, 4, 6]
]


def empty_board() -> List[int]:
    return [EMPTY] * 9


def serialize_board(board: List[int]) -> str:
    return ''.join(str(cell) for cell in board)


def deserialize_board(board_str: str) -> List[int]:
    return [int(cell) for cell in board_str]


def parse_board(raw: str) -> List[int]:
    """Parse a user-supplied board string such as ``100020000``.

    Raises ValueError for anything that is not exactly 9 chars of 0/1/2.
    """
    raw = (raw or "").strip()
    if len(raw) != 9 or any(c not in "012" for c in raw):
        raise ValueError("Invalid board string. Must be 9 chars of 0/1/2.")
    return deserialize_board(raw)


def opponent(player: int) -> int:
    return PLAYER_O if player == PLAYER_X else PLAYER_X


def legal_actions(board: List[int]) -> List[int]:
    """Empty cells in ascending order; empty for any terminal board."""
    if get_winner(board) is not None:
        return []
    return [i for i, v in enumerate(board) if v == EMPTY]


def get_winner(board: List[int]) -> Optional[int]:
    for pattern in WIN_PATTERNS:
        a, b, c = pattern
        v = board[a]
        if v != EMPTY and v == board[b] and v == board[c]:
            return v
    return None


def is_draw(board: List[int]) -> bool:
    return get_winner(board) is None and EMPTY not in board


def is_terminal(board: List[int]) -> bool:
    return get_winner(board) is not None or EMPTY not in board


def apply_move(board: List[int], idx: int, player: int) -> List[int]:
    if board[idx] != EMPTY:
        raise ValueError(f"Cell {idx} is already occupied")
    child = board[:]
    child[idx] = player
    return child


def get_piece_counts(board: List[int]) -> Tuple[int, int]:
    return board.count(PLAYER_X), board.count(PLAYER_O)


def current_player(board: List[int]) -> int:
    x, o = get_piece_counts(board)
    return PLAYER_X if x == o else PLAYER_O


def is_valid_state(board: List[int]) -> bool:
    x_count, o_count = get_piece_counts(board)
    if not (x_count == o_count or x_count == o_count + 1):
        return False
    w = get_winner(board)
    if w == PLAYER_X and x_count != o_count + 1:
        return False
    if w == PLAYER_O and x_count != o_count:
        return False
    # no double winners
    def count_wins(p: int) -> int:
        return sum(1 for pat in WIN_PATTERNS if all(board[i] == p for i in pat))
    if count_wins(PLAYER_X) > 0 and count_wins(PLAYER_O) > 0:
        return False
    return True


def render_board(board: List[int]) -> str:
    rows = []
    for r in range(3):
        cells = []
        for c in range(3):
            i = 3 * r + c
            cells.append(SYMBOLS[board[i]] if board[i] != EMPTY else str(i))
        rows.append(' '.join(cells))
    return '\n'.join(rows)

"""
Exact game-theoretic solver (minimax with memoization), from the side-to-move perspective.
Used as the strongest scripted opponent when evaluating a trained table.
Tie-break policy:
- Prefer win over draw over loss.
- Among wins/draws, prefer shorter distance (plies) to termination.
- Among losses, prefer longer distance (delay the loss).
"""
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from .game_basics import current_player, get_winner, is_draw, legal_actions


def apply_move_t(board_t: tuple, idx: int, player: int) -> tuple:
    lst = list(board_t)
    lst[idx] = player
    return tuple(lst)


def _rank(value: int, dtt: int) -> Tuple[int, int]:
    # wins and draws: sooner is better; losses: later is better
    if value == -1:
        return (value, dtt)
    return (value, -dtt)


@lru_cache(maxsize=None)
def solve_state(board_t: tuple) -> Dict:
    board = list(board_t)
    if get_winner(board) is not None:
        # the side to move has just been beaten
        return {'value': -1, 'plies_to_end': 0, 'optimal_moves': tuple(),
                'q_values': tuple([None] * 9)}
    if is_draw(board):
        return {'value': 0, 'plies_to_end': 0, 'optimal_moves': tuple(),
                'q_values': tuple([None] * 9)}
    p = current_player(board)
    q_vals: List[Optional[int]] = [None] * 9
    best: Optional[Tuple[int, int]] = None
    best_moves: List[int] = []
    for mv in legal_actions(board):
        child = solve_state(apply_move_t(board_t, mv, p))
        q = -child['value']
        dtt = 1 + child['plies_to_end']
        q_vals[mv] = q
        rank = _rank(q, dtt)
        if best is None or rank > best:
            best = rank
            best_moves = [mv]
        elif rank == best:
            best_moves.append(mv)
    assert best is not None
    value, dtt_key = best
    return {
        'value': value,
        'plies_to_end': dtt_key if value == -1 else -dtt_key,
        'optimal_moves': tuple(sorted(best_moves)),
        'q_values': tuple(q_vals),
    }


def optimal_moves(board: List[int]) -> List[int]:
    return list(solve_state(tuple(board))['optimal_moves'])

"""
Evaluation arena: greedy playouts of a trained table against scripted opponents.

Opponents are plain functions ``(board, player, rng) -> action``:
- random: uniform over legal moves.
- win-taking: completes a line when it can, otherwise random.
- heuristic: wins if possible, else blocks, else random.
- perfect: a uniformly chosen minimax-optimal move.

Besides the result, each game counts the agent's avoidable blunders: moves
that hand the opponent an immediate win while a safe move was available.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from .agent import QLearningAgent
from .game_basics import (
    PLAYER_X,
    apply_move,
    empty_board,
    get_winner,
    is_terminal,
    legal_actions,
    opponent,
    serialize_board,
)
from .solver import optimal_moves
from .tactics import blocking_moves, gives_opponent_immediate_win, immediate_winning_moves, safe_moves

Opponent = Callable[[List[int], int, np.random.Generator], int]


def _pick(moves: List[int], rng: np.random.Generator) -> int:
    return int(moves[int(rng.integers(len(moves)))])


def random_opponent(board: List[int], player: int, rng: np.random.Generator) -> int:
    return _pick(legal_actions(board), rng)


def win_taking_opponent(board: List[int], player: int, rng: np.random.Generator) -> int:
    wins = immediate_winning_moves(board, player)
    if wins:
        return wins[0]
    return random_opponent(board, player, rng)


def heuristic_opponent(board: List[int], player: int, rng: np.random.Generator) -> int:
    wins = immediate_winning_moves(board, player)
    if wins:
        return wins[0]
    blocks = blocking_moves(board, player)
    if blocks:
        return blocks[0]
    return random_opponent(board, player, rng)


def perfect_opponent(board: List[int], player: int, rng: np.random.Generator) -> int:
    return _pick(optimal_moves(board), rng)


OPPONENTS: Dict[str, Opponent] = {
    "random": random_opponent,
    "win-taking": win_taking_opponent,
    "heuristic": heuristic_opponent,
    "perfect": perfect_opponent,
}


@dataclass
class GameRecord:
    agent_player: int
    winner: Optional[int]
    moves: List[int] = field(default_factory=list)
    blunders: int = 0

    @property
    def outcome(self) -> str:
        if self.winner is None:
            return "draw"
        return "win" if self.winner == self.agent_player else "loss"


@dataclass
class EvaluationSummary:
    opponent: str
    agent_player: int
    games: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    blunder_games: int = 0

    def add(self, rec: GameRecord) -> None:
        self.games += 1
        if rec.outcome == "win":
            self.wins += 1
        elif rec.outcome == "loss":
            self.losses += 1
        else:
            self.draws += 1
        if rec.blunders:
            self.blunder_games += 1

    def rate(self, count: int) -> float:
        return count / self.games if self.games else 0.0

    def as_dict(self) -> Dict[str, Union[str, int, float]]:
        return {
            "opponent": self.opponent,
            "agent_player": self.agent_player,
            "games": self.games,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "blunder_games": self.blunder_games,
            "win_rate": self.rate(self.wins),
            "draw_rate": self.rate(self.draws),
            "loss_rate": self.rate(self.losses),
            "clean_rate": self.rate(self.games - self.blunder_games),
        }


def play_game(
    agent: QLearningAgent,
    opp: Opponent,
    agent_player: int = PLAYER_X,
    rng: Optional[np.random.Generator] = None,
) -> GameRecord:
    """One game with the agent exploiting only (exploration 0)."""
    rng = rng if rng is not None else np.random.default_rng()
    board = empty_board()
    player = PLAYER_X
    rec = GameRecord(agent_player=agent_player, winner=None)
    while not is_terminal(board):
        if player == agent_player:
            a = agent.choose_action(serialize_board(board), legal_actions(board), exploration=0.0)
            if gives_opponent_immediate_win(board, player, a) and safe_moves(board, player):
                rec.blunders += 1
        else:
            a = opp(board, player, rng)
        board = apply_move(board, a, player)
        rec.moves.append(a)
        player = opponent(player)
    rec.winner = get_winner(board)
    return rec


def evaluate(
    agent: QLearningAgent,
    opp: Union[str, Opponent] = "heuristic",
    games: int = 200,
    agent_player: int = PLAYER_X,
    seed: Optional[int] = None,
) -> EvaluationSummary:
    if isinstance(opp, str):
        if opp not in OPPONENTS:
            raise ValueError(f"Unknown opponent: {opp}")
        name, fn = opp, OPPONENTS[opp]
    else:
        name, fn = getattr(opp, "__name__", "custom"), opp
    rng = np.random.default_rng(seed)
    summary = EvaluationSummary(opponent=name, agent_player=agent_player)
    for _ in range(games):
        summary.add(play_game(agent, fn, agent_player=agent_player, rng=rng))
    logging.info("Evaluation vs %s as %s: wins=%d draws=%d losses=%d blunder_games=%d",
                 name, "X" if agent_player == PLAYER_X else "O",
                 summary.wins, summary.draws, summary.losses, summary.blunder_games)
    return summary

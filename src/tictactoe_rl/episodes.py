"""
Training episodes for the Q-learning agent.

Both training regimes run through ``run_episode``; they differ only in which
strategy moves each side and which sides learn:

- legacy: X moves uniformly at random, O is the agent and the only learner.
- self-play: the same table moves and learns for both X and O.

Each learning side keeps one pending (state, action) pair. When that side
moves again without ending the game, the pending pair is bootstrapped from the
position the side now faces (the board after the opponent's reply). When the
game ends every learning side's pending pair receives the terminal reward from
its own perspective.

A move that ends the game replaces its side's pending pair without
bootstrapping it: only the final pair of each side sees the terminal reward.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Collection, Dict, List, Optional, Tuple

from .game_basics import (
    PLAYER_O,
    PLAYER_X,
    apply_move,
    empty_board,
    get_winner,
    is_terminal,
    legal_actions,
    opponent,
    serialize_board,
)

if TYPE_CHECKING:
    from .agent import QLearningAgent

Strategy = Callable[["QLearningAgent", str, List[int]], int]


@dataclass
class EpisodeResult:
    winner: Optional[int]
    plies: int
    updates: int
    epsilon: float


def agent_policy(agent: "QLearningAgent", state: str, legal: List[int]) -> int:
    return agent.choose_action(state, legal)


def random_policy(agent: "QLearningAgent", state: str, legal: List[int]) -> int:
    return int(legal[int(agent.rng.integers(len(legal)))])


def terminal_reward(winner: Optional[int], side: int) -> float:
    if winner is None:
        return 0.0
    return 1.0 if winner == side else -1.0


def run_episode(
    agent: "QLearningAgent",
    movers: Dict[int, Strategy],
    learners: Collection[int],
) -> EpisodeResult:
    board = empty_board()
    pending: Dict[int, Tuple[str, int]] = {}
    player = PLAYER_X
    updates = 0
    plies = 0
    while True:
        state = serialize_board(board)
        action = movers[player](agent, state, legal_actions(board))
        board = apply_move(board, action, player)
        plies += 1
        if player in learners:
            if not is_terminal(board) and player in pending:
                prev_state, prev_action = pending[player]
                agent.update(prev_state, prev_action, 0.0, state)
                updates += 1
            pending[player] = (state, action)
        if is_terminal(board):
            break
        player = opponent(player)

    winner = get_winner(board)
    for side, (s, a) in pending.items():
        agent.update_terminal(s, a, terminal_reward(winner, side))
        updates += 1
    eps = agent.decay_epsilon()
    logging.debug("episode done winner=%s plies=%d updates=%d epsilon=%.5f",
                  winner, plies, updates, eps)
    return EpisodeResult(winner=winner, plies=plies, updates=updates, epsilon=eps)


def run_legacy_episode(agent: "QLearningAgent") -> EpisodeResult:
    return run_episode(
        agent,
        movers={PLAYER_X: random_policy, PLAYER_O: agent_policy},
        learners=(PLAYER_O,),
    )


def run_self_play_episode(agent: "QLearningAgent") -> EpisodeResult:
    return run_episode(
        agent,
        movers={PLAYER_X: agent_policy, PLAYER_O: agent_policy},
        learners=(PLAYER_X, PLAYER_O),
    )


EPISODE_RUNNERS: Dict[str, Callable[["QLearningAgent"], EpisodeResult]] = {
    "self-play": run_self_play_episode,
    "legacy": run_legacy_episode,
}

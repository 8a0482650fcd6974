"""tictactoe_rl package.

Tabular Q-learning for Tic-Tac-Toe: rules engine, agent, training episodes,
snapshots, evaluation against scripted opponents, and a simple CLI.

Convenience imports are exposed for common workflows.
"""

from .agent import AgentConfig, QLearningAgent
from .episodes import EpisodeResult, run_legacy_episode, run_self_play_episode
from .evaluation import evaluate
from .session import AgentSession, TrainingReport
from .snapshot import CorruptSnapshotError, SnapshotError, SnapshotIOError

__all__ = [
    "AgentConfig",
    "QLearningAgent",
    "EpisodeResult",
    "run_legacy_episode",
    "run_self_play_episode",
    "AgentSession",
    "TrainingReport",
    "evaluate",
    "SnapshotError",
    "CorruptSnapshotError",
    "SnapshotIOError",
]

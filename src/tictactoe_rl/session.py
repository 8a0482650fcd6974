"""
Single-owner access to a Q-learning agent.

An ``AgentSession`` is the only handle interactive code (a UI, the CLI, a
background trainer) should use. Every operation holds the session lock for
its whole duration, so live moves, table peeks and saves never observe a
half-finished episode. Long training runs take the lock one episode at a time:
other callers interleave between episodes, progress is reported between
episodes, and cancellation is checked before each episode.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .agent import USE_AGENT_EPSILON, QLearningAgent
from .episodes import EPISODE_RUNNERS, EpisodeResult
from .game_basics import PLAYER_O, PLAYER_X, legal_actions, serialize_board
from .paths import snapshot_path


@dataclass
class TrainingReport:
    mode: str
    requested: int
    episodes: int = 0
    cancelled: bool = False
    x_wins: int = 0
    o_wins: int = 0
    draws: int = 0
    updates: int = 0
    epsilon: float = 0.0
    elapsed: float = 0.0
    history: List[Dict[str, float]] = field(default_factory=list)

    def record(self, result: EpisodeResult) -> None:
        self.episodes += 1
        self.updates += result.updates
        self.epsilon = result.epsilon
        if result.winner == PLAYER_X:
            self.x_wins += 1
        elif result.winner == PLAYER_O:
            self.o_wins += 1
        else:
            self.draws += 1

    def metrics(self) -> Dict[str, float]:
        n = max(self.episodes, 1)
        return {
            "episodes": float(self.episodes),
            "x_win_rate": self.x_wins / n,
            "o_win_rate": self.o_wins / n,
            "draw_rate": self.draws / n,
            "epsilon": float(self.epsilon),
        }

    def as_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d.pop("history")
        return d


ProgressCallback = Callable[[int, int, TrainingReport], None]


class AgentSession:
    def __init__(self, agent: Optional[QLearningAgent] = None,
                 snapshot: Union[str, Path, None] = None) -> None:
        self._agent = agent if agent is not None else QLearningAgent()
        self._lock = threading.RLock()
        self.snapshot = Path(snapshot) if snapshot is not None else snapshot_path()

    @contextmanager
    def locked(self) -> Iterator[QLearningAgent]:
        """Exclusive access to the underlying agent."""
        with self._lock:
            yield self._agent

    # -- live play ----------------------------------------------------------

    def choose_action(self, state: str, legal: Sequence[int],
                      exploration: float = USE_AGENT_EPSILON) -> int:
        with self._lock:
            return self._agent.choose_action(state, legal, exploration)

    def reply(self, board: List[int]) -> int:
        """Greedy move for the side to move on ``board``."""
        return self.choose_action(serialize_board(board), legal_actions(board), exploration=0.0)

    def peek_action_values(self, state: str) -> Optional[np.ma.MaskedArray]:
        with self._lock:
            return self._agent.peek_action_values(state)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            out: Dict[str, object] = dict(self._agent.stats())
            out.update(asdict(self._agent.config))
            return out

    # -- training -----------------------------------------------------------

    def run_legacy_episode(self) -> EpisodeResult:
        with self._lock:
            return self._agent.run_legacy_episode()

    def run_self_play_episode(self) -> EpisodeResult:
        with self._lock:
            return self._agent.run_self_play_episode()

    def train(
        self,
        episodes: int,
        mode: str = "self-play",
        progress: Optional[ProgressCallback] = None,
        report_every: int = 1000,
        cancel: Optional[threading.Event] = None,
    ) -> TrainingReport:
        if mode not in EPISODE_RUNNERS:
            raise ValueError(f"Unknown training mode: {mode}")
        if episodes < 0:
            raise ValueError(f"episodes must be non-negative: {episodes}")
        if report_every <= 0:
            raise ValueError(f"report_every must be positive: {report_every}")
        runner = EPISODE_RUNNERS[mode]
        with self._lock:
            report = TrainingReport(mode=mode, requested=episodes, epsilon=self._agent.epsilon)
        start = time.perf_counter()
        logging.info("Training %d %s episodes (epsilon=%.4f)", episodes, mode, report.epsilon)
        for ep in range(episodes):
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                logging.info("Training cancelled after %d/%d episodes", ep, episodes)
                break
            with self._lock:
                result = runner(self._agent)
            report.record(result)
            done = ep + 1
            if done % report_every == 0 or done == episodes:
                report.elapsed = time.perf_counter() - start
                report.history.append(dict(report.metrics(), step=float(done)))
                logging.debug("progress %d/%d x=%d o=%d draw=%d epsilon=%.4f",
                              done, episodes, report.x_wins, report.o_wins,
                              report.draws, report.epsilon)
                if progress is not None:
                    progress(done, episodes, report)
        report.elapsed = time.perf_counter() - start
        logging.info(
            "Trained %d episodes in %.2fs: x_wins=%d o_wins=%d draws=%d epsilon=%.4f",
            report.episodes, report.elapsed, report.x_wins, report.o_wins,
            report.draws, report.epsilon,
        )
        return report

    def train_in_background(
        self,
        episodes: int,
        mode: str = "self-play",
        progress: Optional[ProgressCallback] = None,
        report_every: int = 1000,
    ) -> Tuple[threading.Thread, threading.Event, List[TrainingReport]]:
        """Run ``train`` on a daemon thread.

        Returns the thread, the event that cancels it, and a list that receives
        the final report once the thread finishes.
        """
        cancel = threading.Event()
        reports: List[TrainingReport] = []

        def _run() -> None:
            reports.append(self.train(episodes, mode=mode, progress=progress,
                                      report_every=report_every, cancel=cancel))

        thread = threading.Thread(target=_run, name="ttt-training", daemon=True)
        thread.start()
        return thread, cancel, reports

    # -- persistence --------------------------------------------------------

    def save(self, location: Union[str, Path, None] = None) -> Path:
        with self._lock:
            return self._agent.save(location if location is not None else self.snapshot)

    def load(self, location: Union[str, Path, None] = None) -> bool:
        with self._lock:
            return self._agent.load(location if location is not None else self.snapshot)

"""
Tabular Q-learning agent for Tic-Tac-Toe.

The value table maps a serialized board (see ``game_basics.serialize_board``)
to a row of 9 action values plus a legality mask. Rows are created lazily the
first time a state is referenced by action selection or by an update: empty
cells start at 0.0, occupied cells (and every cell of a won board) are marked
illegal and never take part in a max or an argmax.

Update rule (one-step Q-learning):
    Q(s,a) <- Q(s,a) + alpha * [r + gamma * max_a' Q(s',a') - Q(s,a)]
and, for the last move of a game,
    Q(s,a) <- Q(s,a) + alpha * [r - Q(s,a)]
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Sequence, Union

import numpy as np

from .game_basics import deserialize_board, legal_actions

if TYPE_CHECKING:
    from .episodes import EpisodeResult

NUM_ACTIONS = 9

# exploration value meaning "use the agent's own epsilon"
USE_AGENT_EPSILON = -1.0


@dataclass
class AgentConfig:
    alpha: float = 0.5
    gamma: float = 0.9
    epsilon: float = 0.2
    epsilon_floor: float = 0.05
    epsilon_decay: float = 0.99995

    @classmethod
    def from_scratch(cls) -> "AgentConfig":
        """Schedule for training an empty table by self-play.

        Exploration starts at 1.0 and decays per episode to a 0.1 floor. After
        20,000 or more episodes the greedy table avoids handing the opponent an
        immediate win in at least 95% of games as X.
        """
        return cls(epsilon=1.0, epsilon_floor=0.1, epsilon_decay=0.9999)

    def validate(self) -> None:
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1]: {self.alpha}")
        if not 0.0 <= self.gamma < 1.0:
            raise ValueError(f"gamma must be in [0, 1): {self.gamma}")
        for name in ("epsilon", "epsilon_floor", "epsilon_decay"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"{name} must be in [0, 1]: {v}")


@dataclass
class ActionRow:
    values: np.ndarray
    legal: np.ndarray

    @classmethod
    def for_state(cls, state: str) -> "ActionRow":
        legal = np.zeros(NUM_ACTIONS, dtype=bool)
        legal[legal_actions(deserialize_board(state))] = True
        return cls(values=np.zeros(NUM_ACTIONS, dtype=np.float64), legal=legal)

    def max_legal(self) -> float:
        if not self.legal.any():
            return 0.0
        return float(self.values[self.legal].max())

    def masked(self) -> np.ma.MaskedArray:
        return np.ma.masked_array(self.values.copy(), mask=~self.legal, shrink=False)


class QLearningAgent:
    """Epsilon-greedy tabular Q-learning over serialized board states.

    Randomness comes from an injected ``numpy.random.Generator`` (pass ``rng``
    or a ``seed``) so exploration and episodes are reproducible.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ) -> None:
        config = config or AgentConfig()
        config.validate()
        self.alpha = config.alpha
        self.gamma = config.gamma
        self.epsilon = config.epsilon
        self.epsilon_floor = config.epsilon_floor
        self.epsilon_decay = config.epsilon_decay
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self._table: Dict[str, ActionRow] = {}

    # -- table access -------------------------------------------------------

    @property
    def config(self) -> AgentConfig:
        return AgentConfig(
            alpha=self.alpha,
            gamma=self.gamma,
            epsilon=self.epsilon,
            epsilon_floor=self.epsilon_floor,
            epsilon_decay=self.epsilon_decay,
        )

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, state: object) -> bool:
        return state in self._table

    def states(self) -> Iterator[str]:
        return iter(sorted(self._table))

    def row(self, state: str) -> ActionRow:
        """Return the live row for ``state``, creating it if needed."""
        r = self._table.get(state)
        if r is None:
            r = ActionRow.for_state(state)
            self._table[state] = r
        return r

    def replace_table(self, table: Dict[str, ActionRow], config: AgentConfig) -> None:
        config.validate()
        self._table = table
        self.alpha = config.alpha
        self.gamma = config.gamma
        self.epsilon = config.epsilon
        self.epsilon_floor = config.epsilon_floor
        self.epsilon_decay = config.epsilon_decay

    def peek_action_values(self, state: str) -> Optional[np.ma.MaskedArray]:
        """Copy of a state's values with illegal cells masked, or None if unseen.

        Never creates a row.
        """
        r = self._table.get(state)
        if r is None:
            return None
        return r.masked()

    def stats(self) -> Dict[str, Union[int, float, None]]:
        touched = 0
        lo: Optional[float] = None
        hi: Optional[float] = None
        for r in self._table.values():
            vals = r.values[r.legal]
            if vals.size == 0:
                continue
            if np.any(vals != 0.0):
                touched += 1
            lo = float(vals.min()) if lo is None else min(lo, float(vals.min()))
            hi = float(vals.max()) if hi is None else max(hi, float(vals.max()))
        return {"num_states": len(self._table), "updated_states": touched,
                "min_value": lo, "max_value": hi}

    # -- policy -------------------------------------------------------------

    def choose_action(
        self,
        state: str,
        legal: Sequence[int],
        exploration: float = USE_AGENT_EPSILON,
    ) -> int:
        if len(legal) == 0:
            raise ValueError(f"No legal actions available for state {state}")
        r = self.row(state)
        eps = exploration if exploration >= 0 else self.epsilon
        if self.rng.random() < eps:
            return int(legal[int(self.rng.integers(len(legal)))])
        best = legal[0]
        best_q = r.values[best]
        for a in legal[1:]:
            if r.values[a] > best_q:
                best_q = r.values[a]
                best = a
        return int(best)

    def greedy_action(self, state: str, legal: Sequence[int]) -> int:
        return self.choose_action(state, legal, exploration=0.0)

    # -- learning -----------------------------------------------------------

    def update(self, state: str, action: int, reward: float, next_state: str) -> float:
        """Non-terminal TD update; returns the TD error."""
        _check_action(action)
        r = self.row(state)
        max_next = self.row(next_state).max_legal()
        td = reward + self.gamma * max_next - r.values[action]
        r.values[action] += self.alpha * td
        return float(td)

    def update_terminal(self, state: str, action: int, reward: float) -> float:
        """Terminal update without bootstrap; returns the TD error."""
        _check_action(action)
        r = self.row(state)
        td = reward - r.values[action]
        r.values[action] += self.alpha * td
        return float(td)

    def decay_epsilon(self) -> float:
        self.epsilon = max(self.epsilon_floor, self.epsilon * self.epsilon_decay)
        return self.epsilon

    # -- training episodes --------------------------------------------------

    def run_legacy_episode(self) -> "EpisodeResult":
        """One episode against a uniformly random X; this agent plays O."""
        from .episodes import run_legacy_episode

        return run_legacy_episode(self)

    def run_self_play_episode(self) -> "EpisodeResult":
        """One episode with this table playing both sides."""
        from .episodes import run_self_play_episode

        return run_self_play_episode(self)

    # -- persistence --------------------------------------------------------

    def save(self, location: Union[str, Path]) -> Path:
        from .snapshot import save_snapshot

        return save_snapshot(self, location)

    def load(self, location: Union[str, Path]) -> bool:
        from .snapshot import load_snapshot

        return load_snapshot(self, location)

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in asdict(self.config).items())
        return f"QLearningAgent({params}, states={len(self)})"


def _check_action(action: int) -> None:
    if not 0 <= action < NUM_ACTIONS:
        raise ValueError(f"Action out of range 0..8: {action}")


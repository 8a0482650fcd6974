"""
Snapshot persistence for the Q-table and its hyperparameters.

A snapshot is a single compressed ``.npz`` archive holding the state keys, a
(n, 9) float64 value matrix, a (n, 9) boolean legality matrix and the agent's
hyperparameters. Archives are written without pickling and are replaced
atomically: the new snapshot is written next to the target and moved into
place, so a failed save never clobbers the previous one.
"""
from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Union

import numpy as np

from .agent import NUM_ACTIONS, ActionRow, AgentConfig

if TYPE_CHECKING:
    from .agent import QLearningAgent

SNAPSHOT_FORMAT_VERSION = 1

_REQUIRED = ("format_version", "keys", "values", "legal",
             "alpha", "gamma", "epsilon", "epsilon_floor", "epsilon_decay")


class SnapshotError(Exception):
    """Base class for snapshot failures."""


class CorruptSnapshotError(SnapshotError):
    """A snapshot exists but cannot be read back into a table."""


class SnapshotIOError(SnapshotError):
    """A snapshot could not be written."""


def save_snapshot(agent: "QLearningAgent", location: Union[str, Path]) -> Path:
    path = Path(location)
    keys = list(agent.states())
    values = np.zeros((len(keys), NUM_ACTIONS), dtype=np.float64)
    legal = np.zeros((len(keys), NUM_ACTIONS), dtype=bool)
    for i, k in enumerate(keys):
        r = agent.row(k)
        values[i] = r.values
        legal[i] = r.legal
    cfg = agent.config
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "wb") as f:
            np.savez_compressed(
                f,
                format_version=np.int64(SNAPSHOT_FORMAT_VERSION),
                keys=np.array(keys, dtype="<U9"),
                values=values,
                legal=legal,
                alpha=np.float64(cfg.alpha),
                gamma=np.float64(cfg.gamma),
                epsilon=np.float64(cfg.epsilon),
                epsilon_floor=np.float64(cfg.epsilon_floor),
                epsilon_decay=np.float64(cfg.epsilon_decay),
            )
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise SnapshotIOError(f"Failed to write snapshot {path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
    logging.info("Saved Q-table snapshot: %s (%d states)", path, len(keys))
    return path


def _read_table(path: Path):
    data = np.load(path, allow_pickle=False)
    if not hasattr(data, "files"):
        raise ValueError("not an npz archive")
    with data:
        missing = [k for k in _REQUIRED if k not in data.files]
        if missing:
            raise KeyError(f"missing fields: {', '.join(missing)}")
        version = int(data["format_version"])
        if version != SNAPSHOT_FORMAT_VERSION:
            raise ValueError(f"unsupported snapshot format version {version}")
        keys = data["keys"]
        values = np.asarray(data["values"], dtype=np.float64)
        legal = np.asarray(data["legal"], dtype=bool)
        config = AgentConfig(
            alpha=float(data["alpha"]),
            gamma=float(data["gamma"]),
            epsilon=float(data["epsilon"]),
            epsilon_floor=float(data["epsilon_floor"]),
            epsilon_decay=float(data["epsilon_decay"]),
        )
    n = keys.shape[0] if keys.ndim == 1 else -1
    if n < 0 or values.shape != (n, NUM_ACTIONS) or legal.shape != (n, NUM_ACTIONS):
        raise ValueError("inconsistent table shapes")
    config.validate()
    table: Dict[str, ActionRow] = {}
    for i, key in enumerate(keys):
        key = str(key)
        if len(key) != 9 or any(c not in "012" for c in key):
            raise ValueError(f"invalid state key {key!r}")
        expected = ActionRow.for_state(key).legal
        if not np.array_equal(expected, legal[i]):
            raise ValueError(f"legality mask does not match state {key}")
        table[key] = ActionRow(values=values[i].copy(), legal=legal[i].copy())
    return table, config


def load_snapshot(agent: "QLearningAgent", location: Union[str, Path]) -> bool:
    """Replace the agent's table and hyperparameters from a snapshot.

    Returns False (agent untouched) when nothing exists at ``location``.
    Raises CorruptSnapshotError when the file exists but cannot be used.
    """
    path = Path(location)
    if not path.exists():
        logging.info("No snapshot at %s; keeping current table", path)
        return False
    try:
        table, config = _read_table(path)
    except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as e:
        raise CorruptSnapshotError(f"Unreadable snapshot {path}: {type(e).__name__}: {e}") from e
    agent.replace_table(table, config)
    logging.info("Loaded Q-table snapshot: %s (%d states, epsilon=%.4f)",
                 path, len(table), config.epsilon)
    return True

"""Where snapshots and exports live, plus git provenance for manifests.

Every location is environment-first so an installed package never writes
under site-packages:

- ``TTT_SNAPSHOT``: the Q-table snapshot file.
- ``TTT_DATA_CLEAN``: directory holding the default snapshot.
- ``TTT_DATA_RAW``: default export directory.
- ``TTT_REPO_ROOT``: base for both data directories.

Without overrides the base is the nearest enclosing git checkout, else the CWD.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Dict

SNAPSHOT_FILENAME = "ttt_qtable.npz"


def _env_path(var: str) -> Path | None:
    value = os.getenv(var)
    return Path(value) if value else None


def _find_git_root(start: Path) -> Path | None:
    for cur in [start, *start.parents][:5]:
        if (cur / ".git").exists():
            return cur
    return None


def repo_root() -> Path:
    return (_env_path("TTT_REPO_ROOT")
            or _find_git_root(Path(__file__).resolve())
            or Path.cwd())


def data_raw() -> Path:
    return _env_path("TTT_DATA_RAW") or repo_root() / "data_raw"


def data_clean() -> Path:
    return _env_path("TTT_DATA_CLEAN") or repo_root() / "data_clean"


def snapshot_path() -> Path:
    """Default Q-table snapshot: TTT_SNAPSHOT, else data_clean()/ttt_qtable.npz."""
    return _env_path("TTT_SNAPSHOT") or data_clean() / SNAPSHOT_FILENAME


def _git(*args: str) -> str | None:
    try:
        return subprocess.check_output(
            ["git", "-C", str(repo_root()), *args],
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=2.0,
        )
    except (OSError, subprocess.SubprocessError):
        return None


def _head_from_files(root: Path) -> str | None:
    # No git binary: resolve .git/HEAD by hand
    try:
        head = (root / ".git" / "HEAD").read_text().strip()
        if head.startswith("ref:"):
            ref_file = root / ".git" / head.split()[1]
            return ref_file.read_text().strip() if ref_file.exists() else None
        return head or None
    except OSError:
        return None


def get_git_commit() -> str | None:
    out = _git("rev-parse", "HEAD")
    if out is not None:
        return out.strip()
    return _head_from_files(repo_root())


def get_git_is_dirty() -> bool | None:
    """True with uncommitted changes, False when clean, None outside a repo."""
    out = _git("status", "--porcelain")
    return None if out is None else bool(out.strip())


def provenance() -> Dict[str, object]:
    return {"git_commit": get_git_commit(), "git_is_dirty": get_git_is_dirty()}

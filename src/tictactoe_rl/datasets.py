"""
Dataset export for a trained Q-table.

Each visited state with at least one legal move becomes one row per legal
action, so the table can be inspected or used as supervision outside this
package. CSV is always available; Parquet needs pandas and pyarrow
(``pip install .[parquet]``). A manifest records provenance, row counts, a
schema hash and file checksums.
"""
from __future__ import annotations

import csv
import hashlib
import importlib.util
import json
import logging
import sys
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .agent import QLearningAgent
from .game_basics import current_player, deserialize_board
from .paths import provenance
from .tracking import log_artifact, log_params


@dataclass
class ExportArgs:
    out: Path
    greedy_only: bool = False
    cli_argv: List[str] | None = None
    format: str = "csv"  # one of: "csv", "parquet", "both"


DATASET_VERSION = "2.0.0"

CSV_NAME = "qtable_state_actions.csv"
PARQUET_NAME = "qtable_state_actions.parquet"
SCHEMA_NAME = "qtable_state_actions.schema.json"

# column -> JSON Schema type, in file order
ROW_SCHEMA: Dict[str, str] = {
    "board_state": "string",
    "action": "integer",
    "q_value": "number",
    "is_greedy": "boolean",
    "state_value": "number",
    "to_move": "integer",
    "num_pieces": "integer",
    "legal_count": "integer",
}

FORMATS = ("csv", "parquet", "both")

_PARQUET_MISSING = (
    "Parquet dependencies not available (install pandas and pyarrow). "
    "Use pip install .[parquet] to enable parquet support."
)


def table_rows(agent: QLearningAgent, greedy_only: bool = False) -> List[Dict[str, Any]]:
    """Flatten the table into state-action rows, sorted by state then action."""
    rows: List[Dict[str, Any]] = []
    for state in agent.states():
        values = agent.peek_action_values(state)
        if values is None or values.count() == 0:
            continue
        legal = np.flatnonzero(~np.ma.getmaskarray(values)).tolist()
        # first maximum in ascending action order, matching greedy play
        greedy = max(legal, key=lambda a: (values[a], -a))
        board = deserialize_board(state)
        shared = {
            "state_value": float(values[greedy]),
            "to_move": current_player(board),
            "num_pieces": 9 - board.count(0),
            "legal_count": len(legal),
        }
        for a in legal:
            if greedy_only and a != greedy:
                continue
            rows.append({"board_state": state, "action": a, "q_value": float(values[a]),
                         "is_greedy": a == greedy, **shared})
    return rows


def row_json_schema() -> Dict[str, Any]:
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "properties": {k: {"type": t} for k, t in ROW_SCHEMA.items()},
        "required": list(ROW_SCHEMA),
        "additionalProperties": False,
    }


def schema_hash() -> str:
    payload = "\n".join(f"{k}:{t}" for k, t in ROW_SCHEMA.items())
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def _have_parquet() -> bool:
    return all(importlib.util.find_spec(m) is not None for m in ("pandas", "pyarrow"))


def _package_versions() -> Dict[str, str]:
    versions: Dict[str, str] = {}
    for dist in ("numpy", "pandas", "pyarrow"):
        if importlib.util.find_spec(dist) is None:
            continue
        try:
            versions[dist] = metadata.version(dist)
        except metadata.PackageNotFoundError:
            continue
    return versions


def _write_csv(rows: List[Dict[str, Any]], path: Path) -> None:
    with path.open("w", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(ROW_SCHEMA))
        w.writeheader()
        for r in rows:
            # repr keeps floats round-trippable
            w.writerow({**r, "q_value": repr(r["q_value"]), "state_value": repr(r["state_value"])})
    logging.info("Wrote CSV: %s (%d rows)", path, len(rows))


def _write_parquet(rows: List[Dict[str, Any]], path: Path) -> bool:
    try:
        import pandas as pd  # type: ignore

        pd.DataFrame(rows, columns=list(ROW_SCHEMA)).to_parquet(path)
    except (ImportError, OSError, ValueError) as e:
        logging.warning("Failed to write Parquet file: %s: %s", type(e).__name__, e)
        return False
    logging.info("Wrote Parquet: %s", path)
    return True


def _manifest(agent: QLearningAgent, args: ExportArgs, rows: List[Dict[str, Any]],
              files: Dict[str, Optional[str]]) -> Dict[str, Any]:
    stats = agent.stats()
    return {
        "dataset_version": DATASET_VERSION,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "args": {"greedy_only": args.greedy_only, "format": args.format},
        "hyperparameters": asdict(agent.config),
        "table": {"num_states": stats["num_states"], "updated_states": stats["updated_states"]},
        **provenance(),
        "python": {"python_version": sys.version.split(" ")[0], "packages": _package_versions()},
        "cli_argv": args.cli_argv,
        "row_counts": {"state_actions": len(rows)},
        "schema_hash": {"state_actions": schema_hash() if rows else None},
        "files": files,
        "checksums": {label: _sha256_file(Path(p)) for label, p in files.items() if p is not None},
        "parquet_written": files["state_actions_parquet"] is not None,
    }


def run_export(agent: QLearningAgent, args: ExportArgs) -> Path:
    fmt = (args.format or "csv").lower()
    if fmt not in FORMATS:
        raise ValueError(f"Unknown export format: {args.format}")
    have_parquet = _have_parquet()
    if fmt == "parquet" and not have_parquet:
        # only parquet was requested: fail before writing anything
        raise RuntimeError(_PARQUET_MISSING)

    rows = table_rows(agent, greedy_only=args.greedy_only)
    logging.info("Flattened %d states into %d state-action rows", len(agent), len(rows))
    args.out.mkdir(parents=True, exist_ok=True)
    files: Dict[str, Optional[str]] = {"state_actions_csv": None, "state_actions_parquet": None}

    if fmt in ("csv", "both"):
        _write_csv(rows, args.out / CSV_NAME)
        files["state_actions_csv"] = str(args.out / CSV_NAME)
    if fmt in ("parquet", "both"):
        if not have_parquet:
            logging.warning("%s Proceeding with CSV only; manifest will record parquet_written=false.",
                            _PARQUET_MISSING)
        elif _write_parquet(rows, args.out / PARQUET_NAME):
            files["state_actions_parquet"] = str(args.out / PARQUET_NAME)

    manifest_path = args.out / "manifest.json"
    manifest_path.write_text(json.dumps(_manifest(agent, args, rows, files), indent=2))
    schema_dir = args.out / "schema"
    schema_dir.mkdir(parents=True, exist_ok=True)
    (schema_dir / SCHEMA_NAME).write_text(json.dumps(row_json_schema(), indent=2))
    logging.info("Wrote manifest.json and JSON Schema to %s", args.out)

    log_params({"export_format": fmt, "rows_state_actions": len(rows)})
    log_artifact(manifest_path)
    return args.out

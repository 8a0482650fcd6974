"""
Experiment tracking helpers (optional MLflow backend).

Training runs can log hyperparameters, outcome counts and the saved snapshot.
MLflow is only imported when tracking is requested, so it stays an optional
dependency (``pip install .[tracking]``).
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, Optional

if TYPE_CHECKING:
    from .evaluation import EvaluationSummary
    from .session import TrainingReport


@contextmanager
def maybe_mlflow_run(enabled: bool, run_name: str, log_dir: Optional[Path] = None) -> Iterator[bool]:
    """Yield True inside an active MLflow run, False when tracking is off or unavailable."""
    if not enabled:
        yield False
        return
    try:
        import mlflow  # type: ignore

        if log_dir is not None:
            mlflow.set_tracking_uri((log_dir.resolve() / "mlruns").as_uri())
        run = mlflow.start_run(run_name=run_name)
    except Exception as e:
        # Soft-fail: continue without tracking
        logging.warning("MLflow tracking unavailable (%s: %s); continuing without it",
                        type(e).__name__, e)
        yield False
        return
    with run:
        yield True


def log_params(params: Dict[str, object]) -> None:
    try:
        import mlflow  # type: ignore

        if mlflow.active_run() is None:
            return
        mlflow.log_params(params)
    except Exception:
        logging.debug("mlflow.log_params skipped")


def log_metrics(metrics: Dict[str, float], step: Optional[int] = None) -> None:
    try:
        import mlflow  # type: ignore

        if mlflow.active_run() is None:
            return
        mlflow.log_metrics(metrics, step=step)
    except Exception:
        logging.debug("mlflow.log_metrics skipped")


def log_artifact(path: Path, artifact_path: Optional[str] = None) -> None:
    try:
        import mlflow  # type: ignore

        if mlflow.active_run() is None:
            return
        mlflow.log_artifact(str(path), artifact_path=artifact_path)
    except Exception:
        logging.debug("mlflow.log_artifact skipped")


def log_training_report(report: "TrainingReport", step: Optional[int] = None) -> None:
    metrics = dict(report.metrics())
    metrics["updates"] = float(report.updates)
    log_metrics(metrics, step=step)


def log_evaluation(summary: "EvaluationSummary") -> None:
    prefix = f"eval_{summary.opponent}"
    log_metrics({f"{prefix}_{k}": float(v) for k, v in summary.as_dict().items()
                 if isinstance(v, (int, float)) and k != "agent_player"})

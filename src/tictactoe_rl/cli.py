from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import numpy as np

from .agent import AgentConfig, QLearningAgent
from .datasets import ExportArgs, run_export
from .evaluation import OPPONENTS, evaluate
from .game_basics import (
    PLAYER_O,
    PLAYER_X,
    SYMBOLS,
    apply_move,
    current_player,
    empty_board,
    get_winner,
    is_terminal,
    is_valid_state,
    legal_actions,
    parse_board,
    render_board,
    serialize_board,
)
from .paths import data_raw, snapshot_path
from .session import AgentSession, TrainingReport
from .snapshot import CorruptSnapshotError, SnapshotIOError
from .tracking import log_artifact, log_evaluation, log_params, log_training_report, maybe_mlflow_run


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ttt-rl", description="Tic-tac-toe Q-learning CLI")
    sub = p.add_subparsers(dest="cmd")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument(
        "--info",
        action="store_true",
        help="Print environment and dependency info and exit",
    )
    p.add_argument("--seed", type=int, default=None, help="Seed for the agent and opponents")
    p.add_argument(
        "--deterministic",
        action="store_true",
        help="Enable deterministic mode (sets PYTHONHASHSEED, single-threaded BLAS)",
    )

    def add_snapshot(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--snapshot", type=Path, default=None,
            help="Q-table snapshot (default: $TTT_SNAPSHOT or data_clean/ttt_qtable.npz)",
        )

    # train
    p_train = sub.add_parser("train", help="Train the Q-table and save a snapshot")
    add_snapshot(p_train)
    p_train.add_argument("--episodes", type=int, default=50_000, help="Episodes to run (default: 50000)")
    p_train.add_argument(
        "--mode", choices=["self-play", "legacy"], default="self-play",
        help="self-play: one table plays both sides; legacy: agent (O) vs random X",
    )
    p_train.add_argument("--report-every", type=int, default=5000, help="Progress cadence in episodes")
    p_train.add_argument("--fresh", action="store_true", help="Ignore any existing snapshot")
    p_train.add_argument("--no-save", action="store_true", help="Do not write the snapshot back")
    p_train.add_argument("--alpha", type=float, default=None, help="Learning rate override")
    p_train.add_argument("--gamma", type=float, default=None, help="Discount factor override")
    p_train.add_argument("--epsilon", type=float, default=None, help="Exploration rate override")
    p_train.add_argument(
        "--eval-games", type=int, default=0,
        help="After training, play this many greedy games vs the heuristic opponent",
    )
    p_train.add_argument(
        "--tracking",
        choices=["none", "mlflow"],
        default="none",
        help="Experiment tracking backend",
    )
    p_train.add_argument(
        "--log-dir",
        type=Path,
        default=Path("runs"),
        help="Directory for tracking logs/artifacts (for mlflow local backend)",
    )

    # play
    p_play = sub.add_parser("play", help="Play against the trained agent on the terminal")
    add_snapshot(p_play)
    p_play.add_argument("--human", choices=["x", "o"], default="x", help="Your side (X moves first)")

    # peek
    p_peek = sub.add_parser("peek", help="Show the agent's action values for a board (9 digits, 0=empty,1=X,2=O)")
    add_snapshot(p_peek)
    p_peek.add_argument("--board", required=True, help="Board string, e.g., 100020000")

    # evaluate
    p_eval = sub.add_parser("evaluate", help="Greedy playouts against a scripted opponent")
    add_snapshot(p_eval)
    p_eval.add_argument("--games", type=int, default=200, help="Number of games (default: 200)")
    p_eval.add_argument("--opponent", choices=sorted(OPPONENTS), default="heuristic")
    p_eval.add_argument("--agent-side", choices=["x", "o"], default="x")

    # export
    p_export = sub.add_parser(
        "export",
        help="Export the Q-table as state-action rows (CSV by default; parquet requires pandas+pyarrow)",
    )
    add_snapshot(p_export)
    p_export.add_argument(
        "--out", type=Path, default=None, help="Output directory (default: $TTT_DATA_RAW or data_raw)"
    )
    p_export.add_argument("--greedy-only", action="store_true", help="Only export each state's greedy action")
    p_export.add_argument(
        "--format",
        choices=["csv", "parquet", "both"],
        default="csv",
        help="Export format: csv (default), parquet, both",
    )

    return p


def _set_deterministic_env(seed: Optional[int]) -> None:
    import os

    if seed is not None:
        os.environ.setdefault("PYTHONHASHSEED", str(seed))
    # Avoid BLAS variability if present
    for var in ("MKL_NUM_THREADS", "OPENBLAS_NUM_THREADS", "NUMEXPR_NUM_THREADS", "OMP_NUM_THREADS"):
        os.environ.setdefault(var, "1")


def _print_info() -> None:
    import importlib.util
    import platform

    print(f"python={sys.version.split()[0]} platform={platform.platform()}")
    for pkg in ["numpy", "pandas", "pyarrow", "mlflow"]:
        spec = importlib.util.find_spec(pkg)
        if spec is None:
            print(f"{pkg}=<not installed>")
        else:
            mod = __import__(pkg)
            ver = getattr(mod, "__version__", "?")
            print(f"{pkg}={ver}")


def _open_session(ns: argparse.Namespace, fresh: bool = False,
                  config: Optional[AgentConfig] = None) -> AgentSession:
    agent = QLearningAgent(config, seed=ns.seed)
    session = AgentSession(agent, snapshot=ns.snapshot or snapshot_path())
    if fresh:
        return session
    try:
        if not session.load():
            logging.info("Starting with an empty Q-table")
    except CorruptSnapshotError as e:
        logging.warning("%s; starting with an empty Q-table", e)
    return session


def _apply_overrides(session: AgentSession, ns: argparse.Namespace) -> None:
    with session.locked() as agent:
        cfg = agent.config
        for name in ("alpha", "gamma", "epsilon"):
            v = getattr(ns, name, None)
            if v is not None:
                setattr(cfg, name, v)
        cfg.validate()
        agent.alpha, agent.gamma, agent.epsilon = cfg.alpha, cfg.gamma, cfg.epsilon


def _cmd_train(ns: argparse.Namespace) -> int:
    if ns.episodes < 0 or ns.report_every <= 0:
        logging.error("--episodes must be >= 0 and --report-every > 0")
        return 2
    # a loaded snapshot brings its own hyperparameters
    session = _open_session(ns, fresh=ns.fresh, config=AgentConfig.from_scratch())
    try:
        _apply_overrides(session, ns)
    except ValueError as e:
        logging.error("%s", e)
        return 2

    def progress(done: int, total: int, report: TrainingReport) -> None:
        logging.info("episode %d/%d (%.0f%%) x=%d o=%d draw=%d epsilon=%.4f",
                     done, total, 100.0 * done / max(total, 1),
                     report.x_wins, report.o_wins, report.draws, report.epsilon)
        log_training_report(report, step=done)

    with maybe_mlflow_run(ns.tracking == "mlflow", run_name=f"train_{ns.mode}", log_dir=ns.log_dir):
        stats = session.stats()
        log_params({k: stats[k] for k in ("alpha", "gamma", "epsilon", "epsilon_floor", "epsilon_decay")})
        log_params({"mode": ns.mode, "episodes": ns.episodes})
        session.train(ns.episodes, mode=ns.mode, progress=progress, report_every=ns.report_every)
        if not ns.no_save:
            try:
                path = session.save()
            except SnapshotIOError as e:
                logging.error("%s", e)
                return 2
            log_artifact(path)
        if ns.eval_games > 0:
            with session.locked() as agent:
                summary = evaluate(agent, "heuristic", games=ns.eval_games, seed=ns.seed)
            log_evaluation(summary)
    stats = session.stats()
    logging.info("Q-table: states=%s updated=%s", stats["num_states"], stats["updated_states"])
    return 0


def _cmd_play(ns: argparse.Namespace) -> int:
    session = _open_session(ns)
    human = PLAYER_X if ns.human == "x" else PLAYER_O
    board = empty_board()
    print(f"You are {SYMBOLS[human]}. Enter a cell number 0-8 (q to quit).")
    while not is_terminal(board):
        player = current_player(board)
        if player == human:
            print(render_board(board))
            try:
                raw = input("your move> ").strip()
            except EOFError:
                return 0
            if raw.lower() in {"q", "quit", "exit"}:
                return 0
            if not raw.isdigit() or int(raw) not in legal_actions(board):
                logging.error("Illegal move: %r. Legal: %s", raw, legal_actions(board))
                continue
            move = int(raw)
        else:
            move = session.reply(board)
            print(f"agent plays {move}")
        board = apply_move(board, move, player)
    print(render_board(board))
    w = get_winner(board)
    if w is None:
        print("Draw.")
    else:
        print("You win!" if w == human else "Agent wins.")
    return 0


def _cmd_peek(ns: argparse.Namespace) -> int:
    try:
        board = parse_board(ns.board)
    except ValueError as e:
        logging.error("%s", e)
        return 2
    if not is_valid_state(board):
        logging.error("Board is not a valid reachable state.")
        return 2
    session = _open_session(ns)
    state = serialize_board(board)
    values = session.peek_action_values(state)
    if values is None:
        logging.info("state=%s unseen by the agent", state)
        return 0
    mask = np.ma.getmaskarray(values)
    cells = ["  -  " if mask[i] else f"{values[i]:+.3f}" for i in range(9)]
    logging.info("state=%s values=[%s]", state, " ".join(cells))
    return 0


def _cmd_evaluate(ns: argparse.Namespace) -> int:
    if ns.games <= 0:
        logging.error("--games must be positive")
        return 2
    session = _open_session(ns)
    side = PLAYER_X if ns.agent_side == "x" else PLAYER_O
    with session.locked() as agent:
        summary = evaluate(agent, ns.opponent, games=ns.games, agent_player=side, seed=ns.seed)
    d = summary.as_dict()
    logging.info("games=%d wins=%d draws=%d losses=%d blunder_games=%d",
                 d["games"], d["wins"], d["draws"], d["losses"], d["blunder_games"])
    return 0


def _cmd_export(ns: argparse.Namespace, argv: list[str] | None) -> int:
    session = _open_session(ns)
    try:
        with session.locked() as agent:
            out = run_export(agent, ExportArgs(
                out=ns.out or data_raw(),
                greedy_only=ns.greedy_only,
                cli_argv=list(argv) if argv is not None else sys.argv[1:],
                format=ns.format,
            ))
    except RuntimeError as e:
        logging.error("%s", e)
        return 2
    logging.info("Exported Q-table to: %s", out)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if getattr(ns, "verbose", False) else logging.INFO,
                        format="[%(levelname)s] %(message)s")

    # Early exits
    if getattr(ns, "version", False):
        from importlib.metadata import PackageNotFoundError, version as _ver

        try:
            print(_ver("tictactoe-rl"))
        except PackageNotFoundError:
            print("unknown")
        return 0
    if getattr(ns, "info", False):
        _print_info()
        return 0

    if getattr(ns, "deterministic", False):
        _set_deterministic_env(getattr(ns, "seed", None))

    if ns.cmd == "train":
        return _cmd_train(ns)
    if ns.cmd == "play":
        return _cmd_play(ns)
    if ns.cmd == "peek":
        return _cmd_peek(ns)
    if ns.cmd == "evaluate":
        return _cmd_evaluate(ns)
    if ns.cmd == "export":
        return _cmd_export(ns, argv)

    parser.print_help()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

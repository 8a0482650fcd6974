import threading

import pytest

from tictactoe_rl.agent import AgentConfig, QLearningAgent
from tictactoe_rl.game_basics import deserialize_board, legal_actions
from tictactoe_rl.session import AgentSession, TrainingReport


@pytest.fixture
def session(tmp_path):
    return AgentSession(QLearningAgent(seed=7), snapshot=tmp_path / "table.npz")


def test_train_reports_progress_at_cadence_and_end(session):
    seen = []
    report = session.train(25, progress=lambda done, total, rep: seen.append((done, total)),
                           report_every=10)
    assert seen == [(10, 25), (20, 25), (25, 25)]
    assert report.episodes == 25
    assert report.x_wins + report.o_wins + report.draws == 25
    assert not report.cancelled
    assert [h["step"] for h in report.history] == [10.0, 20.0, 25.0]


def test_train_can_be_cancelled_from_progress_callback(session):
    cancel = threading.Event()

    def progress(done, total, rep):
        if done >= 5:
            cancel.set()

    report = session.train(100, progress=progress, report_every=5, cancel=cancel)
    assert report.cancelled
    assert report.episodes == 5


def test_train_zero_episodes_is_a_noop(session):
    report = session.train(0)
    assert report.episodes == 0
    with session.locked() as agent:
        assert len(agent) == 0


@pytest.mark.parametrize("kwargs", [
    {"episodes": -1}, {"episodes": 5, "mode": "tournament"}, {"episodes": 5, "report_every": 0},
])
def test_train_rejects_bad_arguments(session, kwargs):
    with pytest.raises(ValueError):
        session.train(**kwargs)


def test_legacy_mode_only_learns_o_states(session):
    report = session.train(50, mode="legacy")
    assert report.mode == "legacy"
    with session.locked() as agent:
        for s in agent.states():
            b = deserialize_board(s)
            assert b.count(1) == b.count(2) + 1


def test_background_training_runs_and_finishes(session):
    thread, cancel, reports = session.train_in_background(30, report_every=10)
    # live moves interleave with training
    move = session.reply([0] * 9)
    assert move in range(9)
    thread.join(timeout=60)
    assert not thread.is_alive()
    assert len(reports) == 1
    assert isinstance(reports[0], TrainingReport)
    assert reports[0].episodes == 30


def test_background_training_cancel(session):
    thread, cancel, reports = session.train_in_background(10_000_000, report_every=1000)
    cancel.set()
    thread.join(timeout=60)
    assert not thread.is_alive()
    assert reports[0].cancelled
    assert reports[0].episodes < 10_000_000


def test_reply_is_greedy_and_legal(session):
    board = deserialize_board("120000000")
    with session.locked() as agent:
        agent.row("120000000").values[6] = 0.9
    assert session.reply(board) == 6
    assert session.reply(board) in legal_actions(board)


def test_peek_and_stats(session):
    assert session.peek_action_values("000000000") is None
    session.train(5)
    vals = session.peek_action_values("000000000")
    assert vals is not None
    st = session.stats()
    assert st["num_states"] > 0
    assert "alpha" in st and "epsilon_decay" in st


def test_save_and_load_use_session_snapshot_by_default(session, tmp_path):
    session.train(20)
    path = session.save()
    assert path == tmp_path / "table.npz"
    other = AgentSession(QLearningAgent(), snapshot=path)
    assert other.load() is True
    assert other.stats()["num_states"] == session.stats()["num_states"]


def test_load_missing_snapshot_is_false(tmp_path):
    s = AgentSession(QLearningAgent(AgentConfig(epsilon=0.3)), snapshot=tmp_path / "none.npz")
    assert s.load() is False
    assert s.stats()["epsilon"] == pytest.approx(0.3)

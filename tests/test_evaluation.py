import numpy as np
import pytest

from tictactoe_rl.agent import QLearningAgent
from tictactoe_rl.evaluation import (
    OPPONENTS,
    EvaluationSummary,
    GameRecord,
    evaluate,
    heuristic_opponent,
    perfect_opponent,
    play_game,
    random_opponent,
    win_taking_opponent,
)
from tictactoe_rl.game_basics import PLAYER_O, PLAYER_X, deserialize_board, legal_actions


def _rng():
    return np.random.default_rng(0)


def test_win_taking_opponent_completes_a_line():
    b = deserialize_board("110220000")
    assert win_taking_opponent(b, PLAYER_X, _rng()) == 2


def test_heuristic_opponent_blocks_when_it_cannot_win():
    b = deserialize_board("110200000")
    assert heuristic_opponent(b, PLAYER_O, _rng()) == 2


def test_heuristic_opponent_prefers_win_over_block():
    # O can win on 5 (3-4-5) and X threatens 2
    b = deserialize_board("110220100")
    assert heuristic_opponent(b, PLAYER_O, _rng()) == 5


def test_random_opponent_stays_legal():
    b = deserialize_board("120120000")
    rng = _rng()
    for _ in range(50):
        assert random_opponent(b, PLAYER_X, rng) in legal_actions(b)


def test_perfect_opponent_picks_forced_block():
    b = deserialize_board("110020000")
    assert perfect_opponent(b, PLAYER_O, _rng()) == 2


def _script(moves):
    queue = list(moves)

    def _opp(board, player, rng):
        return queue.pop(0)

    return _opp


def test_play_game_counts_avoidable_blunders():
    # an untrained table always plays the lowest free cell
    agent = QLearningAgent(seed=0)
    rec = play_game(agent, _script([8, 2, 5]), agent_player=PLAYER_X, rng=_rng())
    assert rec.moves == [0, 8, 1, 2, 3, 5]
    assert rec.winner == PLAYER_O
    assert rec.outcome == "loss"
    assert rec.blunders == 1


def test_play_game_as_o():
    agent = QLearningAgent(seed=0)
    rec = play_game(agent, _script([4, 8, 2, 6]), agent_player=PLAYER_O, rng=_rng())
    assert rec.agent_player == PLAYER_O
    assert rec.moves[:2] == [4, 0]
    assert rec.outcome in ("win", "draw", "loss")


def test_evaluate_counts_sum_to_games():
    agent = QLearningAgent(seed=1)
    for _ in range(200):
        agent.run_self_play_episode()
    summary = evaluate(agent, "random", games=40, seed=3)
    assert summary.games == 40
    assert summary.wins + summary.draws + summary.losses == 40
    d = summary.as_dict()
    assert d["win_rate"] + d["draw_rate"] + d["loss_rate"] == pytest.approx(1.0)
    assert 0.0 <= d["clean_rate"] <= 1.0


def test_evaluate_is_reproducible_with_seed():
    agent = QLearningAgent(seed=1)
    a = evaluate(agent, "random", games=30, seed=11).as_dict()
    b = evaluate(agent, "random", games=30, seed=11).as_dict()
    assert a == b


def test_untrained_agent_never_beats_perfect_play():
    agent = QLearningAgent(seed=2)
    summary = evaluate(agent, "perfect", games=10, agent_player=PLAYER_O, seed=0)
    assert summary.wins == 0


def test_evaluate_accepts_callables_and_rejects_unknown_names():
    agent = QLearningAgent(seed=0)
    summary = evaluate(agent, random_opponent, games=3, seed=0)
    assert summary.opponent == "random_opponent"
    with pytest.raises(ValueError):
        evaluate(agent, "grandmaster", games=1)


def test_opponent_registry_names():
    assert set(OPPONENTS) == {"random", "win-taking", "heuristic", "perfect"}


def test_summary_rates_with_no_games():
    s = EvaluationSummary(opponent="random", agent_player=PLAYER_X)
    assert s.rate(0) == 0.0
    s.add(GameRecord(agent_player=PLAYER_X, winner=None, blunders=2))
    assert s.draws == 1 and s.blunder_games == 1

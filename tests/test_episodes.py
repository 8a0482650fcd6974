from typing import List

import pytest

from tictactoe_rl.agent import AgentConfig, QLearningAgent
from tictactoe_rl.episodes import agent_policy, run_episode, terminal_reward
from tictactoe_rl.game_basics import PLAYER_O, PLAYER_X, deserialize_board, get_piece_counts


def scripted(moves: List[int]):
    queue = list(moves)

    def _policy(agent, state, legal):
        mv = queue.pop(0)
        assert mv in legal
        return mv

    return _policy


@pytest.fixture
def agent():
    return QLearningAgent(AgentConfig(alpha=0.5, gamma=0.9, epsilon=0.2,
                                      epsilon_floor=0.05, epsilon_decay=0.5), seed=5)


def test_legacy_win_on_anti_diagonal_updates_toward_plus_one(agent):
    # X: 0, 1, 3 (random side); O: 4, 2, 6 completes the 2-4-6 line
    before_last = "112120000"
    agent.row(before_last).values[6] = 0.3
    res = run_episode(
        agent,
        movers={PLAYER_X: scripted([0, 1, 3]), PLAYER_O: scripted([4, 2, 6])},
        learners=(PLAYER_O,),
    )
    assert res.winner == PLAYER_O
    assert res.plies == 6
    assert agent.row(before_last).values[6] == pytest.approx(0.3 + 0.5 * (1.0 - 0.3))
    # X is never learned from
    assert "000000000" not in agent


def test_legacy_bootstraps_previous_pair_from_position_agent_faces(agent):
    # O's first pair (state after X0, action 4) is bootstrapped when O moves again
    faced = "110020000"
    agent.row(faced).values[2] = 0.8
    run_episode(
        agent,
        movers={PLAYER_X: scripted([0, 1, 3]), PLAYER_O: scripted([4, 2, 6])},
        learners=(PLAYER_O,),
    )
    first = agent.row("100000000").values[4]
    assert first == pytest.approx(0.5 * (0.0 + 0.9 * 0.8 - 0.0))


def test_legacy_loss_penalizes_last_agent_move(agent):
    # X: 0, 1, 2 wins the top row; O played 4 then 8
    res = run_episode(
        agent,
        movers={PLAYER_X: scripted([0, 1, 2]), PLAYER_O: scripted([4, 8])},
        learners=(PLAYER_O,),
    )
    assert res.winner == PLAYER_X
    assert agent.row("110020000").values[8] == pytest.approx(-0.5)


def test_self_play_mirrors_terminal_rewards(agent):
    # X: 0, 1, 2 wins; O: 3, 4
    res = run_episode(
        agent,
        movers={PLAYER_X: scripted([0, 1, 2]), PLAYER_O: scripted([3, 4])},
        learners=(PLAYER_X, PLAYER_O),
    )
    assert res.winner == PLAYER_X
    assert agent.row("110220000").values[2] == pytest.approx(0.5)
    assert agent.row("110200000").values[4] == pytest.approx(-0.5)


def test_self_play_draw_pulls_both_sides_toward_zero(agent):
    # ends on 112221121 with no line
    x_moves, o_moves = [0, 5, 1, 6, 8], [2, 3, 4, 7]
    last_x, last_o = "112221120", "112221100"
    agent.row(last_x).values[8] = 0.4
    agent.row(last_o).values[7] = -0.4
    res = run_episode(
        agent,
        movers={PLAYER_X: scripted(x_moves), PLAYER_O: scripted(o_moves)},
        learners=(PLAYER_X, PLAYER_O),
    )
    assert res.winner is None
    assert res.plies == 9
    assert agent.row(last_x).values[8] == pytest.approx(0.2)
    assert agent.row(last_o).values[7] == pytest.approx(-0.2)


def test_self_play_updates_only_the_movers_own_pair(agent):
    # X faces 100200000 on its second move, O faces 110200000 on its second move
    agent.row("100200000").values[8] = 0.6
    agent.row("110200000").values[5] = 0.4
    run_episode(
        agent,
        movers={PLAYER_X: scripted([0, 1, 2]), PLAYER_O: scripted([3, 4])},
        learners=(PLAYER_X, PLAYER_O),
    )
    assert agent.row("000000000").values[0] == pytest.approx(0.5 * 0.9 * 0.6)
    assert agent.row("100000000").values[3] == pytest.approx(0.5 * 0.9 * 0.4)
    # X's second pair is replaced by the winning move without a bootstrap
    assert agent.row("100200000").values[1] == pytest.approx(0.0)



def test_game_ending_move_replaces_pending_pair_without_update(agent):
    agent.row("100200000").values[1] = 0.3
    run_episode(
        agent,
        movers={PLAYER_X: scripted([0, 1, 2]), PLAYER_O: scripted([3, 4])},
        learners=(PLAYER_X, PLAYER_O),
    )
    assert agent.row("100200000").values[1] == pytest.approx(0.3)
    assert agent.row("110220000").values[2] == pytest.approx(0.5)
    assert agent.row("110200000").values[4] == pytest.approx(-0.5)

def test_episode_decays_epsilon(agent):
    res = agent.run_self_play_episode()
    assert res.epsilon == pytest.approx(0.1)
    agent.run_self_play_episode()
    assert agent.epsilon == pytest.approx(0.05)


def test_legacy_episode_only_touches_o_to_move_states():
    agent = QLearningAgent(seed=11)
    for _ in range(200):
        res = agent.run_legacy_episode()
        assert res.winner in (None, PLAYER_X, PLAYER_O)
    assert len(agent) > 0
    for state in agent.states():
        x, o = get_piece_counts(deserialize_board(state))
        assert x == o + 1


def test_self_play_episode_learns_for_both_sides():
    agent = QLearningAgent(seed=3)
    for _ in range(200):
        agent.run_self_play_episode()
    parities = set()
    for state in agent.states():
        x, o = get_piece_counts(deserialize_board(state))
        parities.add(x - o)
    assert parities == {0, 1}


def test_episodes_are_reproducible_with_same_seed():
    a = QLearningAgent(seed=42)
    b = QLearningAgent(seed=42)
    ra = [a.run_self_play_episode().winner for _ in range(50)]
    rb = [b.run_self_play_episode().winner for _ in range(50)]
    assert ra == rb
    assert list(a.states()) == list(b.states())


def test_terminal_reward_perspective():
    assert terminal_reward(PLAYER_X, PLAYER_X) == 1.0
    assert terminal_reward(PLAYER_X, PLAYER_O) == -1.0
    assert terminal_reward(None, PLAYER_O) == 0.0


def test_agent_policy_delegates_to_choose_action(agent):
    agent.row("000000000").values[4] = 1.0
    agent.epsilon = 0.0
    assert agent_policy(agent, "000000000", list(range(9))) == 4

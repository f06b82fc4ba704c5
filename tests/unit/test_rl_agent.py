#!/usr/bin/env python3
"""
Q-learning agent tests
"""
import sys
import threading

import pytest

from conftest import ConstantRng, SequenceRng, make_reading
from biotune.core.music.parameter_space import GoalType, TherapeuticGoal
from biotune.core.music.rl_agent import (
    ACTION_PARAMETERS, Action, QTable, ReinforcementLearner, bucket
)

RELAXATION = TherapeuticGoal(GoalType.RELAXATION, 70.0)


def greedy_learner(q_table=None, **kwargs):
    kwargs.setdefault("exploration_rate", 0.0)
    return ReinforcementLearner(q_table=q_table, rng=ConstantRng(0.5), **kwargs)


@pytest.mark.parametrize("value, expected", [
    (0.0, "low"), (32.9, "low"), (33.0, "medium"), (66.9, "medium"), (67.0, "high"), (100.0, "high"),
])
def test_bucket_boundaries(value, expected):
    assert bucket(value) == expected


def test_state_key_includes_goal():
    state = greedy_learner().discretize_state(make_reading(arousal=80, valence=20), RELAXATION)
    assert state.key == "high-low-relaxation"


def test_action_key_round_trip():
    action = Action("volume", -3.0)
    assert action.key == "volume:-3.0"
    assert Action.from_key(action.key) == action


def test_reward_is_clamped():
    learner = greedy_learner()
    reward = learner.calculate_reward(make_reading(arousal=80, valence=30),
                                      make_reading(arousal=20, valence=70), RELAXATION)
    assert reward == 10.0

    reward = learner.calculate_reward(make_reading(arousal=20, valence=70),
                                      make_reading(arousal=95, valence=5), RELAXATION)
    assert reward == -10.0


def test_reward_components():
    learner = greedy_learner()
    # 10 points closer, not yet within reach of the target
    reward = learner.calculate_reward(make_reading(arousal=60, valence=70),
                                      make_reading(arousal=50, valence=70), RELAXATION)
    assert reward == pytest.approx(2.0)

    # already at the goal and holding: bonus only
    at_goal = make_reading(arousal=20, valence=70)
    assert learner.calculate_reward(at_goal, at_goal, RELAXATION) == pytest.approx(5.0)


def test_q_value_converges_toward_fixed_point():
    learner = greedy_learner()
    at_goal = make_reading(arousal=20, valence=70)
    action = Action("tempo", -2.0)
    state_key = learner.discretize_state(at_goal, RELAXATION).key

    values = []
    for _ in range(2000):
        learner.learn(at_goal, action, at_goal, RELAXATION)
        values.append(learner.q_table.get_value(state_key, action.key))

    # reward 5 with discount 0.95 settles at 5 / (1 - 0.95)
    assert all(later >= earlier for earlier, later in zip(values, values[1:]))
    assert 99.0 < values[-1] <= 100.0


def test_q_values_stay_bounded():
    learner = greedy_learner(learning_rate=0.5)
    readings = [make_reading(arousal=a, valence=v) for a, v in [(80, 30), (20, 70), (95, 5), (50, 50)]]
    for i in range(3000):
        learner.learn(readings[i % 4], Action(ACTION_PARAMETERS[i % 6], 1.0),
                      readings[(i + 1) % 4], RELAXATION)
    for actions in learner.export_q_table().values():
        for value in actions.values():
            assert abs(value) <= 10.0 / (1 - 0.95) + 1e-9


def test_greedy_tie_picks_first_seen_action():
    table = QTable({"high-low-relaxation": {"volume:-3.0": 1.0, "tempo:2.0": 1.0}})
    learner = greedy_learner(q_table=table)
    action = learner.select_action(make_reading(arousal=80, valence=20), RELAXATION)
    assert action == Action("volume", -3.0)


def test_greedy_picks_highest_value():
    table = QTable({"high-low-relaxation": {"volume:-3.0": 1.0, "tempo:-5.0": 4.0}})
    learner = greedy_learner(q_table=table)
    assert learner.select_action(make_reading(arousal=80, valence=20), RELAXATION).key == "tempo:-5.0"


def test_unseen_state_gets_random_action():
    learner = greedy_learner()
    action = learner.select_action(make_reading(arousal=80, valence=20), RELAXATION)
    assert action.parameter in ACTION_PARAMETERS
    assert -10.0 <= action.adjustment <= 10.0


def test_exploration_draw_takes_random_action():
    table = QTable({"high-low-relaxation": {"volume:-3.0": 1.0}})
    # exploration draw, parameter draw, adjustment draw
    learner = ReinforcementLearner(q_table=table, exploration_rate=0.5,
                                   rng=SequenceRng([0.1, 0.0, 1.0]))
    action = learner.select_action(make_reading(arousal=80, valence=20), RELAXATION)
    assert action == Action("tempo", 10.0)


def test_exploration_decay_has_floor():
    learner = greedy_learner(exploration_rate=0.2, exploration_decay=0.5, min_exploration_rate=0.05)
    for _ in range(10):
        learner.decay_exploration()
    assert learner.exploration_rate == 0.05
    assert learner.episode_count == 10

    learner.reset_exploration()
    assert learner.exploration_rate == 0.2


def test_get_best_actions_ranked():
    table = QTable({"low-high-relaxation": {"tempo:-2.0": 1.0, "volume:-4.0": 3.0,
                                            "density:1.0": 2.0, "timbre:6.0": -1.0}})
    learner = greedy_learner(q_table=table)
    best = learner.get_best_actions(make_reading(arousal=20, valence=80), RELAXATION, top_k=3)
    assert [(a.key, v) for a, v in best] == [("volume:-4.0", 3.0), ("density:1.0", 2.0),
                                             ("tempo:-2.0", 1.0)]
    assert learner.get_best_actions(make_reading(arousal=80, valence=80), RELAXATION) == []


def test_export_is_a_copy():
    learner = greedy_learner()
    learner.learn(make_reading(), Action("tempo", 1.0), make_reading(), RELAXATION)
    exported = learner.export_q_table()
    exported.clear()
    assert learner.q_table.size == 1


def test_import_replaces_table():
    learner = greedy_learner()
    learner.import_q_table({"low-low-focus": {"rhythm:5.0": 2.5}})
    assert "low-low-focus" in learner.q_table
    assert learner.q_table.get_value("low-low-focus", "rhythm:5.0") == 2.5


def test_statistics():
    learner = greedy_learner()
    assert learner.get_statistics()['average_reward'] == 0.0

    learner.learn(make_reading(arousal=60, valence=70), Action("tempo", -1.0),
                  make_reading(arousal=50, valence=70), RELAXATION)
    learner.learn(make_reading(arousal=50, valence=70), Action("tempo", 1.0),
                  make_reading(arousal=60, valence=70), RELAXATION)
    stats = learner.get_statistics()
    assert stats['total_transitions'] == 2
    assert stats['success_rate'] == pytest.approx(50.0)
    assert stats['average_reward'] == pytest.approx(0.0)
    assert stats['exploration_rate'] == 0.0
    assert stats['q_table_size'] == 2

    learner.import_q_table({"low-low-focus": {"rhythm:5.0": 2.5, "tempo:1.0": 0.5}})
    assert learner.get_statistics()['q_table_size'] == 2
    assert learner.q_table.size == 1


def test_shared_table_updates_are_atomic():
    table = QTable()

    def hammer():
        for _ in range(1000):
            table.update("s", "a", lambda value: value + 1)

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert table.get_value("s", "a") == 8000


def test_learners_share_table():
    table = QTable()
    first, second = greedy_learner(q_table=table), greedy_learner(q_table=table)
    first.learn(make_reading(), Action("tempo", 1.0), make_reading(), RELAXATION)
    assert second.q_table.size == 1


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from biotune.config.music_params import distance_to_goal
from biotune.core.biofeedback.reading import Reading
from biotune.core.music.parameter_space import TherapeuticGoal
from biotune.utils.logging import get_logger

logger = get_logger()

ACTION_PARAMETERS = ("tempo", "harmony", "volume", "density", "timbre", "rhythm")
MAX_ADJUSTMENT = 10.0
REWARD_LIMIT = 10.0

LOW_BUCKET = 33.0
HIGH_BUCKET = 67.0


def bucket(value: float) -> str:
    if value < LOW_BUCKET:
        return "low"
    if value < HIGH_BUCKET:
        return "medium"
    return "high"


@dataclass(frozen=True)
class DiscreteState:
    arousal: str
    valence: str
    goal: str

    @property
    def key(self) -> str:
        return f"{self.arousal}-{self.valence}-{self.goal}"


@dataclass(frozen=True)
class Action:
    parameter: str
    adjustment: float

    @property
    def key(self) -> str:
        return f"{self.parameter}:{self.adjustment}"

    @classmethod
    def from_key(cls, key: str) -> "Action":
        parameter, adjustment = key.split(":", 1)
        return cls(parameter=parameter, adjustment=float(adjustment))


@dataclass
class LearningTransition:
    state: str
    action: str
    next_state: str
    reward: float
    timestamp: float


class QTable:
    """State -> action -> value store.

    Owned by whoever runs the learning sessions and handed to each learner.
    Every read-modify-write of a single entry happens under one lock.
    """

    def __init__(self, table: Optional[Dict[str, Dict[str, float]]] = None):
        self._table: Dict[str, Dict[str, float]] = {}
        self._lock = threading.RLock()
        if table:
            self.import_table(table)

    @property
    def size(self) -> int:
        """Number of states"""
        return len(self._table)

    @property
    def entry_count(self) -> int:
        """Number of (state, action) values"""
        with self._lock:
            return sum(len(actions) for actions in self._table.values())

    def __contains__(self, state_key: str) -> bool:
        return state_key in self._table

    def get_actions(self, state_key: str) -> Dict[str, float]:
        with self._lock:
            return dict(self._table.get(state_key, {}))

    def get_value(self, state_key: str, action_key: str) -> float:
        with self._lock:
            return self._table.get(state_key, {}).get(action_key, 0.0)

    def max_value(self, state_key: str) -> float:
        """Best value reachable from a state; 0 for a state never seen"""
        with self._lock:
            actions = self._table.get(state_key)
            if not actions:
                return 0.0
            return max(actions.values())

    def update(self, state_key: str, action_key: str,
               fn: Callable[[float], float]) -> float:
        """Atomically replace Q(s, a) with fn(Q(s, a))"""
        with self._lock:
            actions = self._table.setdefault(state_key, {})
            value = float(fn(actions.get(action_key, 0.0)))
            actions[action_key] = value
            return value

    def export_table(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {state: dict(actions) for state, actions in self._table.items()}

    def import_table(self, table: Dict[str, Dict[str, float]]):
        with self._lock:
            self._table = {str(state): {str(action): float(value) for action, value in actions.items()}
                           for state, actions in table.items()}

    def clear(self):
        with self._lock:
            self._table.clear()


class ReinforcementLearner:
    """Tabular epsilon-greedy Q-learning over music parameter adjustments"""

    def __init__(self,
                 q_table: Optional[QTable] = None,
                 learning_rate: float = 0.1,
                 discount_factor: float = 0.95,
                 exploration_rate: float = 0.2,
                 exploration_decay: float = 0.995,
                 min_exploration_rate: float = 0.05,
                 history_size: int = 1000,
                 rng=None):
        self.q_table = q_table if q_table is not None else QTable()
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self.initial_exploration_rate = exploration_rate
        self.exploration_rate = exploration_rate
        self.exploration_decay = exploration_decay
        self.min_exploration_rate = min_exploration_rate
        self.rng = rng if rng is not None else np.random.default_rng()

        self.history = deque(maxlen=history_size)
        self.total_transitions = 0
        self.episode_count = 0

    # ------------------------------------------------------------------
    # State and action space
    # ------------------------------------------------------------------

    def discretize_state(self, reading: Reading, goal: TherapeuticGoal) -> DiscreteState:
        return DiscreteState(arousal=bucket(reading.arousal),
                             valence=bucket(reading.valence),
                             goal=goal.goal_type.value)

    def random_action(self) -> Action:
        index = min(int(self.rng.random() * len(ACTION_PARAMETERS)), len(ACTION_PARAMETERS) - 1)
        adjustment = (self.rng.random() - 0.5) * 2.0 * MAX_ADJUSTMENT
        return Action(parameter=ACTION_PARAMETERS[index], adjustment=round(adjustment, 2))

    def select_action(self, reading: Reading, goal: TherapeuticGoal) -> Action:
        if self.rng.random() < self.exploration_rate:
            return self.random_action()

        actions = self.q_table.get_actions(self.discretize_state(reading, goal).key)
        if not actions:
            return self.random_action()

        best_key, best_value = None, None
        for action_key, value in actions.items():
            if best_value is None or value > best_value:
                best_key, best_value = action_key, value
        return Action.from_key(best_key)

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    @staticmethod
    def goal_distance(reading: Reading, goal: TherapeuticGoal) -> float:
        return distance_to_goal(reading.arousal, reading.valence, goal.goal_type)

    def calculate_reward(self, previous: Reading, current: Reading, goal: TherapeuticGoal) -> float:
        previous_distance = self.goal_distance(previous, goal)
        current_distance = self.goal_distance(current, goal)

        reward = 0.2 * (previous_distance - current_distance)
        if current_distance < 10:
            reward += 5.0
        if current.arousal > 90 or current.arousal < 10:
            reward -= 3.0
        return float(np.clip(reward, -REWARD_LIMIT, REWARD_LIMIT))

    def learn(self, previous: Reading, action: Action, current: Reading,
              goal: TherapeuticGoal) -> float:
        """One-step Q-learning update; returns the reward"""
        reward = self.calculate_reward(previous, current, goal)
        state_key = self.discretize_state(previous, goal).key
        next_state_key = self.discretize_state(current, goal).key

        def q_update(old_value: float) -> float:
            target = reward + self.discount_factor * self.q_table.max_value(next_state_key)
            return old_value + self.learning_rate * (target - old_value)

        q_value = self.q_table.update(state_key, action.key, q_update)

        self.history.append(LearningTransition(state=state_key, action=action.key,
                                               next_state=next_state_key, reward=reward,
                                               timestamp=time.time()))
        self.total_transitions += 1
        logger.log_learning(state=state_key, action=action.key, next_state=next_state_key,
                            reward=reward, q_value=q_value,
                            exploration_rate=self.exploration_rate)
        return reward

    def decay_exploration(self):
        self.exploration_rate = max(self.min_exploration_rate,
                                    self.exploration_rate * self.exploration_decay)
        self.episode_count += 1

    def reset_exploration(self):
        self.exploration_rate = self.initial_exploration_rate
        logger.info(f"Exploration rate reset to {self.exploration_rate}")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_best_actions(self, reading: Reading, goal: TherapeuticGoal,
                         top_k: int = 3) -> List[Tuple[Action, float]]:
        actions = self.q_table.get_actions(self.discretize_state(reading, goal).key)
        ranked = sorted(actions.items(), key=lambda item: item[1], reverse=True)
        return [(Action.from_key(key), value) for key, value in ranked[:top_k]]

    def get_statistics(self) -> Dict[str, float]:
        recent = list(self.history)[-100:]
        rewards = [t.reward for t in recent]
        return {
            'total_transitions': self.total_transitions,
            'episode_count': self.episode_count,
            'success_rate': float(np.mean([r > 0 for r in rewards]) * 100) if rewards else 0.0,
            'average_reward': float(np.mean(rewards)) if rewards else 0.0,
            'q_table_size': self.q_table.entry_count,
            'exploration_rate': self.exploration_rate * 100,
        }

    def export_q_table(self) -> Dict[str, Dict[str, float]]:
        return self.q_table.export_table()

    def import_q_table(self, table: Dict[str, Dict[str, float]]):
        self.q_table.import_table(table)
        logger.info(f"Imported Q-table with {self.q_table.size} states")

"""
Policy Executor Module

Core Idea:
    Follows the best actions stored on a solved Problem from its initial
    state, either by sampling successors (to measure the policy empirically)
    or by always taking the most probable successor (to show the intended
    route).

Mathematical Theory:
    **Episode Cost**: a rollout s₀, a₀, s₁, … accumulates

    .. math::
        G = \\sum_{t=0}^{T-1} C(s_t, \\pi(s_t))

    and the sample mean of G over many rollouts estimates :math:`V^\\pi(s_0)`,
    which should agree with the solved value of the initial state.

Summary:
    The executor never changes the policy; it only reads ``best_action``.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import numpy as np

from .model import Action, Problem, State


class PolicyExecutor:
    """
    Execute and evaluate the solved policy of a Problem.

    Attributes:
        problem: Solved problem
        rng: NumPy random number generator for reproducibility

    Example:
        >>> executor = PolicyExecutor(problem, seed=42)
        >>> cost, steps, trajectory = executor.run_episode()
        >>> stats = executor.evaluate_policy(num_episodes=100)
    """

    def __init__(self, problem: Problem, seed: Optional[int] = None):
        """
        Initialize policy executor.

        Args:
            problem: Problem annotated by one of the solvers
            seed: Random seed for reproducibility. If None, uses system entropy.
        """
        self.problem = problem
        self.rng = np.random.default_rng(seed)

    def _start(self, start: Optional[State]) -> State:
        state = start or self.problem.initial
        if state is None:
            raise ValueError("No start state given and the problem has no initial state")
        return state

    def _action(self, state: State) -> Action:
        if state.best_action is None:
            raise ValueError(f"State {state.id!r} has no best action; solve the problem first")
        return state.best_action

    def run_episode(
        self,
        max_steps: int = 100,
        start: Optional[State] = None
    ) -> Tuple[float, int, List[State]]:
        """
        Execute a single episode following the solved policy.

        Args:
            max_steps: Maximum steps before forced termination
            start: Starting state (default: problem's initial state)

        Returns:
            Tuple of:
                - total_cost: Cumulative cost paid
                - steps: Number of steps taken
                - trajectory: List of visited states including start
        """
        state = self._start(start)
        total_cost = 0.0
        trajectory = [state]

        for step in range(max_steps):
            if self.problem.is_goal(state):
                return total_cost, step, trajectory

            action = self._action(state)
            outcomes = action.outcomes()
            probs = np.array([p for _, p in outcomes], dtype=float)
            idx = self.rng.choice(len(outcomes), p=probs / probs.sum())

            total_cost += action.cost
            state = outcomes[idx][0]
            trajectory.append(state)

        return total_cost, max_steps, trajectory

    def evaluate_policy(
        self,
        num_episodes: int = 100,
        max_steps: int = 100,
        start: Optional[State] = None
    ) -> Dict[str, float]:
        """
        Evaluate the policy over multiple sampled episodes.

        Returns:
            Dictionary with statistics:
                - mean_cost: Average episode cost
                - std_cost: Standard deviation of costs
                - mean_steps: Average episode length
                - success_rate: Fraction reaching the goal (0 to 1)
        """
        costs = []
        steps_list = []
        successes = 0

        for _ in range(num_episodes):
            cost, steps, trajectory = self.run_episode(max_steps, start)
            costs.append(cost)
            steps_list.append(steps)

            if self.problem.is_goal(trajectory[-1]):
                successes += 1

        return {
            'mean_cost': float(np.mean(costs)),
            'std_cost': float(np.std(costs)),
            'mean_steps': float(np.mean(steps_list)),
            'success_rate': successes / num_episodes
        }

    def get_optimal_path(self, start: Optional[State] = None) -> List[State]:
        """
        Follow best actions and their most probable successor.

        Args:
            start: Starting state (default: problem's initial state)

        Returns:
            List of states from start to goal, cut short on a revisit.
        """
        state = self._start(start)
        path = [state]
        visited = {state}

        while not self.problem.is_goal(state):
            outcomes = self._action(state).outcomes()
            next_state = max(outcomes, key=lambda o: o[1])[0]

            # Cycle detection
            if next_state in visited:
                break

            visited.add(next_state)
            path.append(next_state)
            state = next_state

        return path

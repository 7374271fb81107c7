"""
Dynamic Programming Solvers for Cost-Based MDPs

Core Idea:
    Both solvers compute, for every state, the minimal expected cost to reach
    the goal and the action achieving it. They require the complete model
    (transition probabilities and costs) and annotate it in place.

Mathematical Theory:
    **Bellman Expectation Equation** (fixed policy π):

    .. math::
        V^\\pi(s) = C(s,\\pi(s)) + \\sum_{s'} P(s'|s,\\pi(s)) V^\\pi(s')

    **Bellman Optimality Equation**:

    .. math::
        V^*(s) = \\min_a \\left[ C(s,a) + \\sum_{s'} P(s'|s,a) V^*(s') \\right]

    with :math:`V(g) = 0` at the goal. There is no discount; convergence
    relies on every evaluated policy reaching the goal with probability one.

Comparison:
    Policy Iteration vs Value Iteration:
        - Value Iteration: one backup per state per sweep, many sweeps
        - Policy Iteration: full evaluation per round, few rounds
        - Both reach the same greedy policy on a well-formed problem

Complexity:
    - Sweep: O(|S| × |A| × b) where b is the successor fan-out
    - Memory: O(|S| × k) for k iterations of value history

Summary:
    Sweeps are synchronous (Jacobi): every state in a sweep reads values from
    the previous sweep only, and a sweep is committed after all of its states
    have been computed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

import numpy as np

from .bellman import backup, expected_cost
from .config import SolverConfig, StoppingRule
from .model import InvalidMDPError, Policy, Problem, State, ValueFunction
from .utils import Timer

logger = logging.getLogger(__name__)


# =============================================================================
# Result Container
# =============================================================================

@dataclass
class SolveResult:
    """
    Container for solver execution results.

    The solved values and actions live on the Problem itself; this object
    only reports how the solve went.

    Attributes:
        algorithm: ``'value_iteration'`` or ``'policy_iteration'``
        iterations: Value-iteration sweeps or policy-iteration rounds
        converged: False only when an iteration cap stopped the solve
        residuals: Residual of each sweep (VI) or of each round's final
            evaluation sweep (PI)
        statistics: Convergence statistic after each VI sweep
        evaluation_sweeps: Inner evaluation sweeps per PI round
        policy_changes: States whose action changed in each PI round
        elapsed_ms: Wall-clock solve time
    """
    algorithm: str
    iterations: int
    converged: bool
    residuals: List[float] = field(default_factory=list)
    statistics: List[float] = field(default_factory=list)
    evaluation_sweeps: List[int] = field(default_factory=list)
    policy_changes: List[int] = field(default_factory=list)
    elapsed_ms: float = 0.0


def _residual(new: np.ndarray, old: np.ndarray) -> float:
    """Max-norm distance between two value vectors (0.0 when empty)."""
    if new.size == 0:
        return 0.0
    return float(np.max(np.abs(new - old)))


def _prepare(problem: Problem) -> None:
    if problem.goal not in problem:
        raise InvalidMDPError(f"Goal state {problem.goal.id!r} is not part of the model")
    problem.reset()


# =============================================================================
# Value Iteration
# =============================================================================

class ValueIterationSolver:
    """
    Value iteration with synchronous sweeps.

    Core Idea:
        Apply the Bellman optimality backup to every non-goal state, reading
        the values of the previous sweep, until the change between sweeps is
        small enough.

    Mathematical Theory:
        .. math::
            V_{k}(s) = \\min_a \\left[ C(s,a) + \\sum_{s'} P(s'|s,a) V_{k-1}(s') \\right]

        The residual of sweep k is :math:`\\|V_k - V_{k-1}\\|_\\infty` over
        non-goal states. With ``StoppingRule.MIN_RESIDUAL`` the value
        compared against epsilon is the smallest residual seen so far, which
        makes the recorded statistic non-increasing. The first sweep whose
        own residual is below epsilon stops the loop under either rule; the
        rules differ only in the statistic they report.

    Attributes:
        config: Solver configuration

    Example:
        >>> solver = ValueIterationSolver()
        >>> result = solver.solve(problem)
        >>> problem.initial.value, problem.initial.best_action
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()

    def _statistic(self, previous: float, residual: float) -> float:
        if self.config.stopping_rule is StoppingRule.MIN_RESIDUAL:
            return min(previous, residual)
        return residual

    def solve(self, problem: Problem) -> SolveResult:
        """
        Run value iteration, annotating ``problem`` in place.

        Args:
            problem: Validated problem; any previous solution is discarded

        Returns:
            SolveResult describing the run.

        Raises:
            InvalidMDPError: If a state has no eligible action or references a
                state outside the model.
        """
        _prepare(problem)
        result = SolveResult(algorithm='value_iteration', iterations=0, converged=False)
        states = problem.non_goal_states()

        with Timer("Value iteration") as timer:
            for state in problem.states:
                state.values.append(0.0)

            statistic = float('inf')
            iteration = 0

            while True:
                iteration += 1
                snapshot = {s: s.values[iteration - 1] for s in problem.states}

                backups = [backup(s, snapshot) for s in states]
                old = np.array([snapshot[s] for s in states], dtype=float)
                new = np.array([value for value, _ in backups], dtype=float)

                for state, (value, action) in zip(states, backups):
                    state.values.append(value)
                    state.best_action = action
                problem.goal.values.append(0.0)
                problem.goal.best_action = None

                residual = _residual(new, old)
                statistic = self._statistic(statistic, residual)
                result.residuals.append(residual)
                result.statistics.append(statistic)
                logger.debug(f"itr: {iteration} res: {residual:.6g} stat: {statistic:.6g}")

                if statistic <= problem.epsilon:
                    result.converged = True
                    break

                if self.config.max_iterations is not None and iteration >= self.config.max_iterations:
                    logger.warning(
                        f"Value iteration stopped after {iteration} sweeps without converging "
                        f"(statistic {statistic:.6g} > epsilon {problem.epsilon})"
                    )
                    break

        result.iterations = iteration
        result.elapsed_ms = timer.elapsed_ms
        return result


# =============================================================================
# Policy Evaluation
# =============================================================================

class PolicyEvaluator:
    """
    Iterative evaluation of a fixed policy.

    Core Idea:
        Repeatedly apply the Bellman expectation backup for the chosen action
        of each state, using a pair of value buffers, until the change
        between sweeps is at most epsilon.

    Mathematical Theory:
        .. math::
            V_{k+1}(s) = C(s,\\pi(s)) + \\sum_{s'} P(s'|s,\\pi(s)) V_k(s')

        The buffers are seeded with each state's latest permanent value, so
        later rounds of policy iteration start from the previous round's
        solution.

    Attributes:
        config: Solver configuration (``max_evaluation_sweeps``)
        last_sweeps: Sweeps used by the most recent call
        last_residual: Residual of the final sweep of the most recent call
        last_converged: False if the sweep cap was hit
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()
        self.last_sweeps = 0
        self.last_residual = 0.0
        self.last_converged = True

    def evaluate(self, problem: Problem, policy: Policy) -> ValueFunction:
        """
        Compute the value of ``policy`` and append it to every state's history.

        Args:
            problem: Problem whose states carry at least one history entry
            policy: Action for every non-goal state

        Returns:
            Mapping from every state to its value under the policy.

        Raises:
            InvalidMDPError: If the policy omits a non-goal state.
        """
        states = problem.non_goal_states()
        missing = [s.id for s in states if s not in policy]
        if missing:
            raise InvalidMDPError(f"Policy has no action for states: {missing}")

        current: Dict[State, float] = {s: s.value for s in problem.states}
        pending: Dict[State, float] = dict(current)
        sweeps = 0
        converged = True

        while True:
            sweeps += 1
            for state in states:
                pending[state] = expected_cost(policy[state], current)
            pending[problem.goal] = 0.0

            residual = _residual(
                np.array([pending[s] for s in states], dtype=float),
                np.array([current[s] for s in states], dtype=float),
            )
            current, pending = pending, current
            logger.debug(f"eval itr: {sweeps} res: {residual:.6g}")

            if residual <= problem.epsilon:
                break

            cap = self.config.max_evaluation_sweeps
            if cap is not None and sweeps >= cap:
                logger.warning(
                    f"Policy evaluation stopped after {sweeps} sweeps "
                    f"(residual {residual:.6g} > epsilon {problem.epsilon})"
                )
                converged = False
                break

        for state in problem.states:
            state.values.append(current[state])

        self.last_sweeps = sweeps
        self.last_residual = residual
        self.last_converged = converged
        return dict(current)


# =============================================================================
# Policy Iteration
# =============================================================================

class PolicyIterationSolver:
    """
    Howard's policy iteration.

    Core Idea:
        Alternate between evaluating the current policy exactly (up to
        epsilon) and improving it greedily with a Bellman backup, until an
        improvement round changes no action.

    Mathematical Theory:
        **Algorithm Structure**:
            1. π₀(s): first available action in the priority order
               east, north, south, west
            2. Evaluate V^{πₖ}
            3. πₖ₊₁(s) = argmin_a [C(s,a) + Σ P(s'|s,a) V^{πₖ}(s')]
            4. Stop when πₖ₊₁ assigns every state an action with the same
               name as πₖ

        Each round works on an immutable policy snapshot: policy in, values
        out, policy out.

    Attributes:
        config: Solver configuration
        evaluator: Inner PolicyEvaluator
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()
        self.evaluator = PolicyEvaluator(self.config)

    def initial_policy(self, problem: Problem) -> Policy:
        """
        Build π₀ from the configured priority order.

        Raises:
            InvalidMDPError: If a non-goal state has none of the priority
                actions among its eligible actions.
        """
        chosen = {}
        for state in problem.non_goal_states():
            eligible = state.eligible_actions()
            action = next(
                (a for name in self.config.initial_priority for a in eligible if a.name == name),
                None
            )
            if action is None:
                names = ', '.join(str(n) for n in self.config.initial_priority)
                raise InvalidMDPError(
                    f"State {state.id!r} has none of the initial-policy actions ({names})"
                )
            chosen[state] = action
        return MappingProxyType(chosen)

    def improve(
        self,
        problem: Problem,
        values: ValueFunction,
        policy: Policy
    ) -> Tuple[Policy, int]:
        """
        Greedy improvement step.

        An action is replaced only when the backup picks one with a different
        name, so equally named duplicates never count as a change.

        Returns:
            Tuple of (new policy snapshot, number of states that changed).
        """
        improved = {}
        changes = 0
        for state in problem.non_goal_states():
            _, action = backup(state, values)
            if action.name != policy[state].name:
                improved[state] = action
                changes += 1
            else:
                improved[state] = policy[state]
        return MappingProxyType(improved), changes

    @staticmethod
    def _apply(problem: Problem, policy: Policy) -> None:
        for state in problem.non_goal_states():
            state.best_action = policy[state]
        problem.goal.best_action = None

    def solve(self, problem: Problem) -> SolveResult:
        """
        Run policy iteration, annotating ``problem`` in place.

        Args:
            problem: Validated problem; any previous solution is discarded

        Returns:
            SolveResult describing the run.

        Raises:
            InvalidMDPError: If the initial policy cannot be formed or a
                backup finds no eligible action.
        """
        _prepare(problem)
        result = SolveResult(algorithm='policy_iteration', iterations=0, converged=False)

        with Timer("Policy iteration") as timer:
            policy = self.initial_policy(problem)
            self._apply(problem, policy)

            for state in problem.states:
                state.values.append(0.0)

            rounds = 0
            while True:
                rounds += 1
                logger.debug(f"Policy iteration round {rounds}")

                values = self.evaluator.evaluate(problem, policy)
                result.evaluation_sweeps.append(self.evaluator.last_sweeps)
                result.residuals.append(self.evaluator.last_residual)
                if not self.evaluator.last_converged:
                    break

                policy, changes = self.improve(problem, values, policy)
                self._apply(problem, policy)
                result.policy_changes.append(changes)
                logger.debug(f"round {rounds}: {changes} actions changed")

                if changes == 0:
                    result.converged = True
                    break

                if self.config.max_iterations is not None and rounds >= self.config.max_iterations:
                    logger.warning(
                        f"Policy iteration stopped after {rounds} rounds with the policy still changing"
                    )
                    break

        result.iterations = rounds
        result.elapsed_ms = timer.elapsed_ms
        return result


# =============================================================================
# Entry Points
# =============================================================================

def run_value_iteration(problem: Problem, config: Optional[SolverConfig] = None) -> SolveResult:
    """Solve ``problem`` with value iteration and log a summary."""
    result = ValueIterationSolver(config).solve(problem)
    logger.info(f"Value iteration time: {result.elapsed_ms:.0f}ms")
    logger.info(f"Iterations: {result.iterations}")
    return result


def run_policy_iteration(problem: Problem, config: Optional[SolverConfig] = None) -> SolveResult:
    """Solve ``problem`` with policy iteration and log a summary."""
    result = PolicyIterationSolver(config).solve(problem)
    logger.info(f"Policy iteration time: {result.elapsed_ms:.0f}ms")
    logger.info(f"Iterations: {result.iterations}")
    return result

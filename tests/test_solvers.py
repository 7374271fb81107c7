"""
Unit Tests for the Bellman Backup and the DP Solvers

Validates:
    - Backup arithmetic, tie-breaking and self-loop exclusion
    - Value iteration sweep semantics and stopping statistics
    - Policy evaluation buffers and caps
    - Policy iteration initial policy, improvement and agreement with VI
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mdp_planner.algorithms import (
    PolicyEvaluator,
    PolicyIterationSolver,
    ValueIterationSolver,
    run_policy_iteration,
    run_value_iteration,
)
from mdp_planner.bellman import backup
from mdp_planner.builder import ProblemBuilder
from mdp_planner.config import GridConfig, SolverConfig, StoppingRule
from mdp_planner.grid import build_grid_problem
from mdp_planner.model import Direction, InvalidMDPError, Problem, State


def two_state_problem():
    """S0 --east(1.0)--> S1, S1 is the goal."""
    builder = ProblemBuilder()
    builder.add_state('S0').add_state('S1')
    builder.add_action('S0', 'move-east', 1.0, {'S1': 1.0})
    return builder.set_goal('S1').set_initial('S0').build(epsilon=1e-6)


def chain_problem():
    """A -> B -> G with unit costs; B is listed before A."""
    builder = ProblemBuilder()
    builder.add_state('G').add_state('B').add_state('A')
    builder.add_action('B', 'move-east', 1.0, {'G': 1.0})
    builder.add_action('A', 'move-east', 1.0, {'B': 1.0})
    return builder.set_goal('G').set_initial('A').build(epsilon=1e-6)


class TestBellmanBackup(unittest.TestCase):
    """Test cases for the Bellman optimality backup."""

    def setUp(self):
        builder = ProblemBuilder()
        for state_id in ('S0', 'S1', 'S2', 'G'):
            builder.add_state(state_id)
        builder.add_action('S0', 'move', 1.0, {'S1': 0.5, 'S2': 0.5})
        builder.add_action('S1', 'first', 1.0, {'G': 1.0})
        builder.add_action('S1', 'second', 1.0, {'S2': 1.0})
        builder.add_action('S2', 'stay', 0.0, {'S2': 1.0})
        builder.add_action('S2', 'go', 5.0, {'G': 1.0})
        self.problem = builder.set_goal('G').build(epsilon=1e-6)
        self.s0 = self.problem.state('S0')
        self.s1 = self.problem.state('S1')
        self.s2 = self.problem.state('S2')
        self.goal = self.problem.goal

    def test_stochastic_expected_cost(self):
        """Verify cost + sum of probability-weighted successor values."""
        value, action = backup(self.s0, {self.s1: 2.0, self.s2: 4.0})
        self.assertEqual(value, 4.0)
        self.assertEqual(action.name, 'move')

    def test_tie_keeps_earliest_action(self):
        """Verify equal expected costs resolve to the first inserted action."""
        value, action = backup(self.s1, {self.goal: 0.0, self.s2: 0.0})
        self.assertEqual(value, 1.0)
        self.assertEqual(action.name, 'first')

    def test_strictly_better_later_action_wins(self):
        """Verify a later action replaces the incumbent only when strictly cheaper."""
        value, action = backup(self.s1, {self.goal: 3.0, self.s2: 0.0})
        self.assertEqual(value, 1.0)
        self.assertEqual(action.name, 'second')

    def test_self_loop_excluded(self):
        """Verify a zero-cost self-loop never wins the minimum."""
        value, action = backup(self.s2, {self.s2: 0.0, self.goal: 0.0})
        self.assertEqual(action.name, 'go')
        self.assertEqual(value, 5.0)

    def test_only_self_loops_is_invalid(self):
        """Verify a state with no eligible actions is rejected."""
        builder = ProblemBuilder()
        builder.add_state('S').add_state('G')
        builder.add_action('S', 'move-west', 1.0, {'S': 1.0})
        problem = builder.set_goal('G').build(epsilon=1e-6)

        with self.assertRaises(InvalidMDPError):
            backup(problem.state('S'), problem.values())

    def test_stochastic_action_with_own_state_is_eligible(self):
        """Verify only deterministic self-transitions count as self-loops."""
        builder = ProblemBuilder()
        builder.add_state('S').add_state('G')
        builder.add_action('S', 'try', 1.0, {'S': 0.5, 'G': 0.5})
        problem = builder.set_goal('G').build(epsilon=1e-6)
        state = problem.state('S')

        value, action = backup(state, {state: 2.0, problem.goal: 0.0})
        self.assertEqual(action.name, 'try')
        self.assertEqual(value, 2.0)

    def test_missing_successor_value_is_invalid(self):
        """Verify a successor outside the value source is reported as invalid."""
        with self.assertRaises(InvalidMDPError):
            backup(self.s0, {self.s1: 2.0})


class TestValueIteration(unittest.TestCase):
    """Test cases for value iteration."""

    def test_two_state_scenario(self):
        """Verify the single-move problem converges to cost 1 via east."""
        problem = two_state_problem()
        result = run_value_iteration(problem)
        s0, s1 = problem.state('S0'), problem.state('S1')

        self.assertTrue(result.converged)
        self.assertEqual(s0.value, 1.0)
        self.assertIs(s0.best_action.name, Direction.EAST)
        self.assertEqual(s1.value, 0.0)
        self.assertIsNone(s1.best_action)
        self.assertEqual(s0.values, [0.0, 1.0, 1.0])
        self.assertEqual(result.iterations, 2)

    def test_synchronous_sweeps(self):
        """Verify no state reads a value computed in the same sweep."""
        problem = chain_problem()
        result = ValueIterationSolver().solve(problem)

        self.assertEqual(problem.state('B').values, [0.0, 1.0, 1.0, 1.0])
        self.assertEqual(problem.state('A').values, [0.0, 1.0, 2.0, 2.0])
        self.assertEqual(result.iterations, 3)
        self.assertEqual(result.residuals, [1.0, 1.0, 0.0])

    def test_goal_history_is_zero(self):
        """Verify the goal keeps value 0 and one entry per iteration."""
        problem = chain_problem()
        ValueIterationSolver().solve(problem)
        goal = problem.goal

        self.assertEqual(goal.values, [0.0] * len(problem.state('A').values))
        self.assertIsNone(goal.best_action)

    def test_min_residual_statistic_non_increasing(self):
        """Verify the recorded statistic never increases and ends below epsilon."""
        problem = build_grid_problem(GridConfig(width=4, height=4, slip_probability=0.2))
        result = ValueIterationSolver().solve(problem)

        stats = result.statistics
        self.assertTrue(result.converged)
        self.assertTrue(all(b <= a for a, b in zip(stats, stats[1:])))
        self.assertLessEqual(stats[-1], problem.epsilon)
        self.assertEqual(len(stats), result.iterations)

    def test_latest_residual_rule(self):
        """Verify the latest-residual rule reports the raw residuals."""
        problem = chain_problem()
        config = SolverConfig(stopping_rule=StoppingRule.LATEST_RESIDUAL)
        result = ValueIterationSolver(config).solve(problem)

        self.assertEqual(result.statistics, result.residuals)
        self.assertEqual(result.iterations, 3)

    def test_fixed_point_idempotence(self):
        """Verify one more backup at the converged values changes little."""
        problem = build_grid_problem(
            GridConfig(width=4, height=3, goal=(3, 2), obstacles=[(1, 1)], slip_probability=0.2)
        )
        ValueIterationSolver().solve(problem)
        values = problem.values()

        for state in problem.non_goal_states():
            value, _ = backup(state, values)
            self.assertLessEqual(abs(value - state.value), problem.epsilon + 1e-12)

    def test_iteration_cap(self):
        """Verify the cap stops the solve and reports non-convergence."""
        problem = chain_problem()
        result = ValueIterationSolver(SolverConfig(max_iterations=1)).solve(problem)

        self.assertFalse(result.converged)
        self.assertEqual(result.iterations, 1)
        self.assertEqual(problem.state('A').values, [0.0, 1.0])

    def test_resolve_discards_previous_history(self):
        """Verify solving twice yields identical histories."""
        problem = chain_problem()
        ValueIterationSolver().solve(problem)
        first = list(problem.state('A').values)
        ValueIterationSolver().solve(problem)
        self.assertEqual(problem.state('A').values, first)

    def test_state_without_eligible_actions(self):
        """Verify a dead-end state aborts the solve."""
        builder = ProblemBuilder()
        builder.add_state('S').add_state('T').add_state('G')
        builder.add_action('S', 'move-east', 1.0, {'G': 1.0})
        problem = builder.set_goal('G').build(epsilon=1e-6)

        with self.assertRaises(InvalidMDPError):
            ValueIterationSolver().solve(problem)

    def test_goal_outside_model(self):
        """Verify a goal that is not one of the states is rejected."""
        state = State('S')
        problem = Problem(states=[state], goal=State('G'), epsilon=1e-6)

        with self.assertRaises(InvalidMDPError):
            ValueIterationSolver().solve(problem)


class TestPolicyEvaluation(unittest.TestCase):
    """Test cases for iterative policy evaluation."""

    def test_chain_values(self):
        """Verify the policy value and the single history entry appended."""
        problem = chain_problem()
        for state in problem.states:
            state.values.append(0.0)
        policy = {s: s.actions[0] for s in problem.non_goal_states()}

        evaluator = PolicyEvaluator()
        values = evaluator.evaluate(problem, policy)

        self.assertEqual(values[problem.state('A')], 2.0)
        self.assertEqual(values[problem.state('B')], 1.0)
        self.assertEqual(values[problem.goal], 0.0)
        self.assertEqual(problem.state('A').values, [0.0, 2.0])
        self.assertEqual(problem.goal.values, [0.0, 0.0])
        self.assertEqual(evaluator.last_sweeps, 3)
        self.assertTrue(evaluator.last_converged)

    def test_stochastic_retry(self):
        """Verify a 50% retry action converges to expected cost 2."""
        builder = ProblemBuilder()
        builder.add_state('S').add_state('G')
        builder.add_action('S', 'try', 1.0, {'S': 0.5, 'G': 0.5})
        problem = builder.set_goal('G').build(epsilon=1e-8)
        state = problem.state('S')

        values = PolicyEvaluator().evaluate(problem, {state: state.actions[0]})
        self.assertAlmostEqual(values[state], 2.0, delta=1e-6)

    def test_missing_policy_entry(self):
        """Verify a policy that skips a state is rejected."""
        problem = chain_problem()
        with self.assertRaises(InvalidMDPError):
            PolicyEvaluator().evaluate(problem, {})

    def test_sweep_cap(self):
        """Verify the sweep cap marks the evaluation as unconverged."""
        problem = chain_problem()
        policy = {s: s.actions[0] for s in problem.non_goal_states()}
        evaluator = PolicyEvaluator(SolverConfig(max_evaluation_sweeps=1))
        evaluator.evaluate(problem, policy)

        self.assertFalse(evaluator.last_converged)
        self.assertEqual(evaluator.last_sweeps, 1)


class TestPolicyIteration(unittest.TestCase):
    """Test cases for policy iteration."""

    def _single_state(self, *actions):
        builder = ProblemBuilder()
        builder.add_state('S').add_state('G')
        for name, successor in actions:
            builder.add_action('S', name, 1.0, {successor: 1.0})
        return builder.set_goal('G').build(epsilon=1e-6)

    def test_initial_policy_priority(self):
        """Verify east is preferred regardless of insertion order."""
        problem = self._single_state(
            ('move-west', 'G'), ('move-south', 'G'), ('move-north', 'G'), ('move-east', 'G')
        )
        policy = PolicyIterationSolver().initial_policy(problem)
        self.assertIs(policy[problem.state('S')].name, Direction.EAST)

    def test_initial_policy_skips_self_loop(self):
        """Verify a self-looping east move falls through to north."""
        problem = self._single_state(
            ('move-east', 'S'), ('move-west', 'G'), ('move-north', 'G')
        )
        policy = PolicyIterationSolver().initial_policy(problem)
        self.assertIs(policy[problem.state('S')].name, Direction.NORTH)

    def test_initial_policy_requires_known_action(self):
        """Verify a state without any priority action is rejected."""
        problem = self._single_state(('jump', 'G'))
        with self.assertRaises(InvalidMDPError):
            PolicyIterationSolver().initial_policy(problem)

    def test_custom_priority(self):
        """Verify problem-specific names can drive the initial policy."""
        problem = self._single_state(('jump', 'G'))
        solver = PolicyIterationSolver(SolverConfig(initial_priority=('jump',)))
        result = solver.solve(problem)

        self.assertTrue(result.converged)
        self.assertEqual(problem.state('S').best_action.name, 'jump')

    def test_two_state_scenario(self):
        """Verify the single-move problem converges in one round."""
        problem = two_state_problem()
        result = run_policy_iteration(problem)
        s0 = problem.state('S0')

        self.assertTrue(result.converged)
        self.assertEqual(result.iterations, 1)
        self.assertEqual(s0.values, [0.0, 1.0])
        self.assertIs(s0.best_action.name, Direction.EAST)
        self.assertIsNone(problem.goal.best_action)

    def test_improvement_switches_action(self):
        """Verify an expensive initial east move is replaced by north."""
        builder = ProblemBuilder()
        builder.add_state('S0').add_state('S1').add_state('G')
        builder.add_action('S0', 'move-east', 10.0, {'S1': 1.0})
        builder.add_action('S0', 'move-north', 1.0, {'G': 1.0})
        builder.add_action('S1', 'move-east', 1.0, {'G': 1.0})
        problem = builder.set_goal('G').build(epsilon=1e-6)

        result = PolicyIterationSolver().solve(problem)
        s0 = problem.state('S0')

        self.assertEqual(result.iterations, 2)
        self.assertEqual(result.policy_changes, [1, 0])
        self.assertIs(s0.best_action.name, Direction.NORTH)
        self.assertEqual(s0.values, [0.0, 11.0, 1.0])

    def test_policy_snapshots_are_read_only(self):
        """Verify policies passed between phases cannot be mutated."""
        problem = two_state_problem()
        policy = PolicyIterationSolver().initial_policy(problem)
        with self.assertRaises(TypeError):
            policy[problem.state('S0')] = None

    def test_round_cap(self):
        """Verify the round cap stops a still-changing policy as unconverged."""
        builder = ProblemBuilder()
        builder.add_state('S0').add_state('S1').add_state('G')
        builder.add_action('S0', 'move-east', 10.0, {'S1': 1.0})
        builder.add_action('S0', 'move-north', 1.0, {'G': 1.0})
        builder.add_action('S1', 'move-east', 1.0, {'G': 1.0})
        problem = builder.set_goal('G').build(epsilon=1e-6)

        result = PolicyIterationSolver(SolverConfig(max_iterations=1)).solve(problem)

        self.assertFalse(result.converged)
        self.assertEqual(result.iterations, 1)
        self.assertEqual(result.policy_changes, [1])
        self.assertIs(problem.state('S0').best_action.name, Direction.NORTH)

    def test_evaluation_cap_skips_improvement(self):
        """Verify an improper initial policy stops at the evaluation cap."""
        problem = build_grid_problem(GridConfig(width=4, height=4, goal=(0, 0)))
        config = SolverConfig(max_evaluation_sweeps=20)

        result = PolicyIterationSolver(config).solve(problem)
        corner = problem.state('3,3')

        self.assertFalse(result.converged)
        self.assertEqual(result.iterations, 1)
        self.assertEqual(result.evaluation_sweeps, [20])
        self.assertEqual(result.policy_changes, [])
        self.assertEqual(corner.value, 20.0)
        self.assertIs(corner.best_action.name, Direction.SOUTH)


class TestAlgorithmAgreement(unittest.TestCase):
    """Cross-check value iteration against policy iteration."""

    def test_deterministic_grid_agreement(self):
        """Verify identical actions and values on a deterministic grid."""
        config = GridConfig(width=4, height=3, goal=(3, 2), obstacles=[(1, 1)])
        vi_problem = build_grid_problem(config)
        pi_problem = build_grid_problem(config)

        run_value_iteration(vi_problem)
        run_policy_iteration(pi_problem)

        for vi_state in vi_problem.non_goal_states():
            pi_state = pi_problem.state(vi_state.id)
            self.assertEqual(vi_state.best_action.name, pi_state.best_action.name)
            self.assertLessEqual(abs(vi_state.value - pi_state.value), vi_problem.epsilon)

        self.assertEqual(vi_problem.state('0,0').value, 5.0)

    def test_stochastic_grid_values_agree(self):
        """Verify both solvers reach the same values on a slippery grid."""
        config = GridConfig(
            width=4, height=3, goal=(3, 2), obstacles=[(1, 1)],
            slip_probability=0.2, epsilon=1e-9
        )
        vi_problem = build_grid_problem(config)
        pi_problem = build_grid_problem(config)

        vi = run_value_iteration(vi_problem)
        pi = run_policy_iteration(pi_problem, SolverConfig(max_iterations=50))

        self.assertTrue(vi.converged and pi.converged)
        for vi_state in vi_problem.states:
            self.assertAlmostEqual(
                vi_state.value, pi_problem.state(vi_state.id).value, delta=1e-6
            )

    def test_running_example(self):
        """Verify both solvers on the bundled example problem."""
        from mdp_planner.cli import load_example

        for run in (run_value_iteration, run_policy_iteration):
            problem = load_example()
            run(problem)
            self.assertAlmostEqual(problem.initial.value, 28.0 / 9.0, delta=1e-5)
            self.assertIs(problem.initial.best_action.name, Direction.NORTH)
            self.assertAlmostEqual(problem.state('2,2').value, 10.0 / 9.0, delta=1e-5)
            self.assertIs(problem.state('2,1').best_action.name, Direction.EAST)


if __name__ == "__main__":
    unittest.main()

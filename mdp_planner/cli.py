"""
Command-line interface.

Usage:
    mdp-planner problem.json --algorithm value --print-grid
    mdp-planner --example --algorithm policy --print-grid --print-values
    mdp-planner --grid 5 4 --goal 4 3 --obstacle 2 2 --slip 0.2 --simulate 200
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .algorithms import run_policy_iteration, run_value_iteration
from .builder import load_problem
from .config import GridConfig, SolverConfig, StoppingRule
from .executor import PolicyExecutor
from .grid import build_grid_problem, render_policy, render_values
from .model import InvalidMDPError, Problem, action_label
from .utils import get_data_path, setup_logging

logger = logging.getLogger(__name__)

ALGORITHMS = {
    'value': run_value_iteration,
    'policy': run_policy_iteration,
    'iv': run_value_iteration,
    'ip': run_policy_iteration,
}


def _positive_float(text: str) -> float:
    value = float(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {text}")
    return value


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mdp-planner',
        description="Solve navigation MDPs with value iteration or policy iteration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    mdp-planner problem.json                     # Value iteration on a JSON problem
    mdp-planner --example -a policy --print-grid # Policy iteration on the bundled example
    mdp-planner --grid 5 5 --goal 4 4 --slip 0.2 --print-grid --print-values
        """
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('problem', nargs='?', help='Path to a JSON problem definition')
    source.add_argument('--example', action='store_true', help='Use the bundled running example')
    source.add_argument('--grid', nargs=2, type=_positive_int, metavar=('WIDTH', 'HEIGHT'),
                        help='Generate a WIDTH x HEIGHT navigation grid')

    grid = parser.add_argument_group('grid options')
    grid.add_argument('--goal', nargs=2, type=int, metavar=('X', 'Y'),
                      help='Goal cell (default: north-east corner)')
    grid.add_argument('--start', nargs=2, type=int, metavar=('X', 'Y'), default=(0, 0),
                      help='Initial cell (default: 0 0)')
    grid.add_argument('--obstacle', nargs=2, type=int, metavar=('X', 'Y'), action='append',
                      default=[], help='Blocked cell; may be repeated')
    grid.add_argument('--slip', type=float, default=0.0,
                      help='Probability of slipping sideways (default: 0.0)')
    grid.add_argument('--step-cost', type=float, default=1.0,
                      help='Cost of each move (default: 1.0)')

    solver = parser.add_argument_group('solver options')
    solver.add_argument('-a', '--algorithm', choices=sorted(ALGORITHMS), default='value',
                        help='value (iv) or policy (ip) iteration (default: value)')
    solver.add_argument('--epsilon', type=_positive_float,
                        help='Override the convergence threshold')
    solver.add_argument('--stopping-rule', choices=[r.value for r in StoppingRule],
                        default=StoppingRule.MIN_RESIDUAL.value,
                        help='Value-iteration statistic compared to epsilon (default: min)')
    solver.add_argument('--max-iterations', type=_positive_int,
                        help='Stop after this many sweeps/rounds even if not converged')
    solver.add_argument('--max-evaluation-sweeps', type=_positive_int,
                        help='Cap on inner policy-evaluation sweeps per round. Set it when '
                             'the east/north/south/west starting policy may never reach the '
                             'goal (e.g. --grid 4 4 --goal 0 0), otherwise policy iteration '
                             'does not terminate')

    output = parser.add_argument_group('output options')
    output.add_argument('-p', '--print-grid', action='store_true', help='Print the policy grid')
    output.add_argument('--print-values', action='store_true', help='Print the value grid')
    output.add_argument('--simulate', type=_positive_int, metavar='N',
                        help='Roll out the policy N times from the initial state')
    output.add_argument('--seed', type=int, help='Random seed for --simulate')
    output.add_argument('-v', '--verbose', action='store_true', help='Log every sweep')
    return parser


def load_example() -> Problem:
    """Load the bundled running example."""
    return load_problem(get_data_path('running_example.json'))


def _load(args: argparse.Namespace) -> Problem:
    if args.example:
        problem = load_example()
    elif args.grid:
        width, height = args.grid
        config = GridConfig(
            width=width,
            height=height,
            goal=tuple(args.goal) if args.goal else None,
            initial=tuple(args.start),
            obstacles=[tuple(o) for o in args.obstacle],
            slip_probability=args.slip,
            step_cost=args.step_cost,
        )
        problem = build_grid_problem(config)
    else:
        problem = load_problem(args.problem)

    if args.epsilon is not None:
        problem.epsilon = args.epsilon
    return problem


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with argument parsing."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        problem = _load(args)
        config = SolverConfig(
            stopping_rule=StoppingRule(args.stopping_rule),
            max_iterations=args.max_iterations,
            max_evaluation_sweeps=args.max_evaluation_sweeps,
        )
        result = ALGORITHMS[args.algorithm](problem, config)

        print(f"Algorithm:  {result.algorithm}")
        print(f"Iterations: {result.iterations}")
        print(f"Converged:  {'yes' if result.converged else 'no'}")
        print(f"Time:       {result.elapsed_ms:.0f}ms")
        if problem.initial is not None:
            initial = problem.initial
            print(f"Initial state {initial.id}: value {initial.value:.4f}, "
                  f"action {action_label(initial.best_action.name if initial.best_action else None)}")

        if args.print_grid:
            render_policy(problem)
        if args.print_values:
            render_values(problem)

        if args.simulate:
            stats = PolicyExecutor(problem, seed=args.seed).evaluate_policy(
                num_episodes=args.simulate, max_steps=10 * len(problem)
            )
            print(f"\n{args.simulate}-Episode Statistics:")
            print(f"  Mean cost: {stats['mean_cost']:.2f} ± {stats['std_cost']:.2f}")
            print(f"  Mean steps: {stats['mean_steps']:.2f}")
            print(f"  Success rate: {stats['success_rate'] * 100:.1f}%")
    except InvalidMDPError as exc:
        logger.error(f"Invalid MDP: {exc}")
        return 1
    except (ValueError, OSError) as exc:
        logger.error(str(exc))
        return 1

    return 0 if result.converged else 1


if __name__ == "__main__":
    sys.exit(main())

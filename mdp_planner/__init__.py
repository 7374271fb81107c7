"""
MDP Planner: Optimal Navigation Policies by Dynamic Programming

Computes cost-to-go values and optimal actions for finite, cost-based
Markov Decision Processes over a graph of states (usually a grid).

Modules:
    model: States, actions, problems and the action vocabulary
    bellman: Bellman optimality backup
    algorithms: Value Iteration, Policy Evaluation, Policy Iteration
    config: Solver and grid configuration
    builder: Validated problem construction and JSON loading
    grid: Grid problem generation and terminal rendering
    executor: Policy rollouts and path extraction
    cli: Command-line interface

References:
    [1] Bellman, R. "Dynamic Programming", Princeton University Press, 1957
    [2] Howard, R. "Dynamic Programming and Markov Processes", MIT Press, 1960
    [3] Bertsekas, D. "Dynamic Programming and Optimal Control", Vol. II, 2012
"""

from .model import (
    Action,
    Direction,
    InvalidMDPError,
    Policy,
    Problem,
    State,
    Transition,
    ValueFunction,
)
from .bellman import backup
from .algorithms import (
    PolicyEvaluator,
    PolicyIterationSolver,
    SolveResult,
    ValueIterationSolver,
    run_policy_iteration,
    run_value_iteration,
)
from .config import GridConfig, SolverConfig, StoppingRule
from .builder import ProblemBuilder, load_problem, problem_from_dict
from .grid import build_grid_problem, render_policy, render_values
from .executor import PolicyExecutor

__version__ = "1.0.0"

__all__ = [
    "Action",
    "Direction",
    "InvalidMDPError",
    "Policy",
    "Problem",
    "State",
    "Transition",
    "ValueFunction",
    "backup",
    "PolicyEvaluator",
    "PolicyIterationSolver",
    "SolveResult",
    "ValueIterationSolver",
    "run_policy_iteration",
    "run_value_iteration",
    "GridConfig",
    "SolverConfig",
    "StoppingRule",
    "ProblemBuilder",
    "load_problem",
    "problem_from_dict",
    "build_grid_problem",
    "render_policy",
    "render_values",
    "PolicyExecutor",
]

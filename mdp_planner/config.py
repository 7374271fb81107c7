"""
Configuration Objects

Core Idea:
    Solver and grid-generation parameters are kept in dataclasses that
    validate themselves on construction, so a bad setting fails before any
    sweep runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .model import ActionName, Direction, parse_action_name


class StoppingRule(Enum):
    """
    Statistic compared against epsilon by value iteration.

    Attributes:
        MIN_RESIDUAL: Smallest sweep residual seen so far (historical behaviour)
        LATEST_RESIDUAL: Residual of the most recent sweep
    """
    MIN_RESIDUAL = 'min'
    LATEST_RESIDUAL = 'latest'


DEFAULT_PRIORITY: Tuple[ActionName, ...] = (
    Direction.EAST,
    Direction.NORTH,
    Direction.SOUTH,
    Direction.WEST,
)
"""Order in which policy iteration picks each state's initial action."""


@dataclass
class SolverConfig:
    """
    Parameters shared by both solvers.

    Attributes:
        stopping_rule: Convergence statistic used by value iteration
        max_iterations: Cap on value-iteration sweeps or policy-iteration
            rounds. None runs until convergence.
        max_evaluation_sweeps: Cap on inner policy-evaluation sweeps per
            round. None runs until convergence.
        initial_priority: Action names tried, in order, when building the
            initial policy for policy iteration

    Example:
        >>> config = SolverConfig(stopping_rule=StoppingRule.LATEST_RESIDUAL,
        ...                       max_iterations=500)
    """
    stopping_rule: StoppingRule = StoppingRule.MIN_RESIDUAL
    max_iterations: Optional[int] = None
    max_evaluation_sweeps: Optional[int] = None
    initial_priority: Tuple[ActionName, ...] = DEFAULT_PRIORITY

    def __post_init__(self):
        """Validate configuration parameters after initialization."""
        if isinstance(self.stopping_rule, str):
            self.stopping_rule = StoppingRule(self.stopping_rule)

        if self.max_iterations is not None and self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got: {self.max_iterations}")

        if self.max_evaluation_sweeps is not None and self.max_evaluation_sweeps < 1:
            raise ValueError(
                f"max_evaluation_sweeps must be >= 1, got: {self.max_evaluation_sweeps}"
            )

        self.initial_priority = tuple(parse_action_name(n) for n in self.initial_priority)
        if not self.initial_priority:
            raise ValueError("initial_priority must name at least one action")


@dataclass
class GridConfig:
    """
    Layout of a rectangular navigation grid.

    Cells are addressed as (x, y) with x growing east and y growing north.

    Attributes:
        width: Number of columns
        height: Number of rows
        goal: Goal cell (absorbing, no actions). Defaults to the north-east
            corner (width - 1, height - 1).
        initial: Start cell, reported by the CLI and executor
        obstacles: Blocked cells (not states)
        slip_probability: Probability mass moved to the two perpendicular
            directions, split evenly. 0.0 is deterministic.
        step_cost: Cost of every move
        epsilon: Convergence threshold stored on the generated problem

    Example:
        >>> config = GridConfig(width=4, height=3, goal=(3, 2),
        ...                     obstacles=[(1, 1)], slip_probability=0.2)
    """
    width: int = 4
    height: int = 4
    goal: Optional[Tuple[int, int]] = None
    initial: Tuple[int, int] = (0, 0)
    obstacles: List[Tuple[int, int]] = field(default_factory=list)
    slip_probability: float = 0.0
    step_cost: float = 1.0
    epsilon: float = 1e-6

    def __post_init__(self):
        """Validate configuration parameters after initialization."""
        if self.width < 1 or self.height < 1 or self.width * self.height < 2:
            raise ValueError(
                f"Grid must contain at least two cells, got: {self.width}x{self.height}"
            )

        if not 0.0 <= self.slip_probability < 1.0:
            raise ValueError(
                f"Slip probability must be in [0, 1), got: {self.slip_probability}"
            )

        if self.step_cost < 0:
            raise ValueError(f"Step cost must be non-negative, got: {self.step_cost}")

        if self.epsilon <= 0:
            raise ValueError(f"Epsilon must be positive, got: {self.epsilon}")

        if self.goal is None:
            self.goal = (self.width - 1, self.height - 1)
        self.goal = tuple(self.goal)
        self.initial = tuple(self.initial)
        self.obstacles = [tuple(o) for o in self.obstacles]

        for name, cell in (('Goal', self.goal), ('Start', self.initial)):
            if not self.contains(cell):
                raise ValueError(f"{name} position out of bounds: {cell}")
            if cell in self.obstacles:
                raise ValueError(f"{name} position cannot be an obstacle: {cell}")

    def contains(self, cell: Tuple[int, int]) -> bool:
        """Check if a cell lies within the grid bounds."""
        return 0 <= cell[0] < self.width and 0 <= cell[1] < self.height

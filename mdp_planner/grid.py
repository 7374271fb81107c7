"""
Grid Navigation Problems

Core Idea:
    Generates navigation problems on a rectangular grid and renders solved
    problems back onto that grid.

Problem Structure:
    State space: every free cell (x, y); obstacles are not states.

    Actions (in this order): move-east, move-north, move-south, move-west,
    each costing ``step_cost``. A move into the boundary or an obstacle
    leaves the agent in place. With slip probability p:

    .. math::
        P(s'|s,a) = (1-p) \\cdot \\mathbb{1}[s'=\\text{intended}] +
                    \\frac{p}{2} \\cdot \\mathbb{1}[s'=\\text{perpendicular}]

    Outcomes landing on the same cell are merged. The goal is absorbing and
    has no actions.

Visual Representation (4×3 grid, north at the top):
    ┌───┬───┬───┬───┐
    │ → │ → │ → │ G │
    ├───┼───┼───┼───┤
    │ ↑ │ X │ → │ ↑ │
    ├───┼───┼───┼───┤
    │ → │ → │ → │ ↑ │
    └───┴───┴───┴───┘
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from .builder import ProblemBuilder
from .config import GridConfig
from .model import Direction, Problem, State

Cell = Tuple[int, int]

ACTION_ORDER: List[Direction] = [
    Direction.EAST,
    Direction.NORTH,
    Direction.SOUTH,
    Direction.WEST,
]

PERPENDICULAR_ACTIONS: Dict[Direction, List[Direction]] = {
    Direction.EAST: [Direction.NORTH, Direction.SOUTH],
    Direction.WEST: [Direction.NORTH, Direction.SOUTH],
    Direction.NORTH: [Direction.EAST, Direction.WEST],
    Direction.SOUTH: [Direction.EAST, Direction.WEST],
}


def cell_id(cell: Cell) -> str:
    """State id used for a grid cell."""
    return f"{cell[0]},{cell[1]}"


def _execute_move(config: GridConfig, cell: Cell, direction: Direction) -> Cell:
    """Target cell of a move; blocked moves stay in place."""
    dx, dy = direction.delta
    target = (cell[0] + dx, cell[1] + dy)
    if not config.contains(target) or target in config.obstacles:
        return cell
    return target


def _outcomes(config: GridConfig, cell: Cell, direction: Direction) -> Dict[str, float]:
    slip = config.slip_probability
    outcomes: Dict[str, float] = {}

    moves = [(direction, 1.0 - slip)]
    if slip > 0.0:
        moves += [(perp, slip / 2.0) for perp in PERPENDICULAR_ACTIONS[direction]]

    for move, probability in moves:
        key = cell_id(_execute_move(config, cell, move))
        outcomes[key] = outcomes.get(key, 0.0) + probability
    return outcomes


def build_grid_problem(config: Optional[GridConfig] = None) -> Problem:
    """
    Generate a navigation problem from a grid layout.

    Args:
        config: Grid layout. Uses default if None.

    Returns:
        Validated Problem whose states carry their cell as coordinates.
    """
    config = config or GridConfig()
    builder = ProblemBuilder()

    cells = [
        (x, y)
        for y in range(config.height)
        for x in range(config.width)
        if (x, y) not in config.obstacles
    ]
    for cell in cells:
        builder.add_state(cell_id(cell), cell)

    for cell in cells:
        if cell == config.goal:
            continue
        for direction in ACTION_ORDER:
            builder.add_action(
                cell_id(cell),
                direction,
                config.step_cost,
                _outcomes(config, cell, direction)
            )

    builder.set_goal(cell_id(config.goal)).set_initial(cell_id(config.initial))
    return builder.build(epsilon=config.epsilon)


# =============================================================================
# Rendering
# =============================================================================

def _layout(problem: Problem) -> Tuple[Dict[Cell, State], range, range]:
    """Map coordinates to states and compute the rows/columns to draw."""
    by_cell: Dict[Cell, State] = {}
    for state in problem.states:
        if state.coords is None:
            raise ValueError(f"State {state.id!r} has no grid coordinates")
        by_cell[state.coords] = state

    xs = [c[0] for c in by_cell]
    ys = [c[1] for c in by_cell]
    columns = range(min(xs), max(xs) + 1)
    rows = range(max(ys), min(ys) - 1, -1)
    return by_cell, columns, rows


def _render(
    problem: Problem,
    title: str,
    width: int,
    cell_text: Callable[[State], str],
    stream: Optional[Callable[[str], None]]
) -> str:
    by_cell, columns, rows = _layout(problem)
    output = stream or print
    bar = "─" * width
    n = len(columns)

    lines = [f"\n{title}:"]
    lines.append("┌" + (bar + "┬") * (n - 1) + bar + "┐")

    for index, y in enumerate(rows):
        row = "│"
        for x in columns:
            state = by_cell.get((x, y))
            if state is None:
                text = "X"
            elif problem.is_goal(state):
                text = "G"
            else:
                text = cell_text(state)
            row += text.center(width) + "│"
        lines.append(row)

        if index < len(rows) - 1:
            lines.append("├" + (bar + "┼") * (n - 1) + bar + "┤")

    lines.append("└" + (bar + "┴") * (n - 1) + bar + "┘")

    result = "\n".join(lines)
    output(result)
    return result


def _policy_glyph(state: State) -> str:
    action = state.best_action
    if action is None:
        return " "
    if isinstance(action.name, Direction):
        return action.name.glyph
    return "?"


def render_policy(problem: Problem, stream: Optional[Callable[[str], None]] = None) -> str:
    """
    Render each state's best action as an arrow.

    Args:
        problem: Solved problem whose states all have coordinates
        stream: Output function (default: print)

    Returns:
        Rendered string representation.

    Raises:
        ValueError: If a state has no coordinates.
    """
    return _render(problem, "Policy Visualization", 3, _policy_glyph, stream)


def render_values(problem: Problem, stream: Optional[Callable[[str], None]] = None) -> str:
    """
    Render each state's final value.

    Args:
        problem: Solved problem whose states all have coordinates
        stream: Output function (default: print)

    Returns:
        Rendered string representation.
    """
    return _render(problem, "State Value Function", 8, lambda s: f"{s.value:.2f}", stream)

"""
MDP Model Module

Core Idea:
    Passive data structures describing a finite, cost-based Markov Decision
    Process over a graph of states (usually grid cells). The solvers annotate
    these objects in place: every state accumulates a history of value
    estimates and a reference to its current best action.

Mathematical Theory:
    A stochastic shortest-path MDP is the tuple:

    .. math::
        \\mathcal{M} = \\langle \\mathcal{S}, \\mathcal{A}, P, C, g \\rangle

    where:
        - :math:`\\mathcal{S}`: finite set of states
        - :math:`\\mathcal{A}(s)`: actions available in state s
        - :math:`P(s'|s,a)`: transition probabilities
        - :math:`C(s,a) \\geq 0`: action cost
        - :math:`g \\in \\mathcal{S}`: absorbing goal with :math:`V(g) = 0`

    The cost-to-go satisfies the Bellman optimality equation:

    .. math::
        V^*(s) = \\min_a \\left[ C(s,a) + \\sum_{s'} P(s'|s,a) V^*(s') \\right]

Summary:
    The model carries no algorithmic behaviour. Validation of externally
    supplied input lives in the builder; the solvers only append to value
    histories and overwrite best-action references.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union


# =============================================================================
# Errors
# =============================================================================

class InvalidMDPError(ValueError):
    """Raised when the supplied model violates an MDP invariant."""


# =============================================================================
# Action Vocabulary
# =============================================================================

class Direction(Enum):
    """
    Cardinal grid moves.

    Attributes:
        EAST: Move one cell east (x increases)
        NORTH: Move one cell north (y increases)
        SOUTH: Move one cell south (y decreases)
        WEST: Move one cell west (x decreases)
    """
    EAST = 'move-east'
    NORTH = 'move-north'
    SOUTH = 'move-south'
    WEST = 'move-west'

    @property
    def delta(self) -> Tuple[int, int]:
        """Coordinate offset of the move."""
        return _DELTAS[self]

    @property
    def glyph(self) -> str:
        """Arrow used by the grid renderer."""
        return _GLYPHS[self]

    def __str__(self) -> str:
        return self.value


_DELTAS: Dict[Direction, Tuple[int, int]] = {
    Direction.EAST: (1, 0),
    Direction.NORTH: (0, 1),
    Direction.SOUTH: (0, -1),
    Direction.WEST: (-1, 0),
}

_GLYPHS: Dict[Direction, str] = {
    Direction.EAST: '→',
    Direction.NORTH: '↑',
    Direction.SOUTH: '↓',
    Direction.WEST: '←',
}

ActionName = Union[Direction, str]
"""A cardinal move, or a problem-specific name for non-grid MDPs."""


def parse_action_name(name: Union[str, Direction]) -> ActionName:
    """
    Map a textual action name onto the closed vocabulary when possible.

    Args:
        name: Raw name, e.g. ``'move-east'`` or ``'jump'``

    Returns:
        The matching Direction, otherwise the name unchanged.
    """
    if isinstance(name, Direction):
        return name
    try:
        return Direction(name)
    except ValueError:
        return name


def action_label(name: Optional[ActionName]) -> str:
    """Printable form of an action name; ``'none'`` for a missing action."""
    if name is None:
        return 'none'
    return str(name)


# =============================================================================
# Model Entities
# =============================================================================

@dataclass(frozen=True)
class Transition:
    """
    Probability record attached to one successor of an action.

    Attributes:
        probability: P(s'|s,a); implicitly 1.0 for deterministic actions
    """
    probability: float = 1.0


@dataclass(eq=False)
class State:
    """
    A single MDP state.

    Hashing and equality are by identity.

    Attributes:
        id: Unique identifier
        coords: Optional (x, y) grid position, x east and y north
        actions: Outgoing actions in insertion order (tie-break order)
        values: Value history; index k is the estimate after iteration k
        best_action: Current greedy action, None before solving and for the goal
    """
    id: str
    coords: Optional[Tuple[int, int]] = None
    actions: List[Action] = field(default_factory=list)
    values: List[float] = field(default_factory=list)
    best_action: Optional[Action] = None

    @property
    def value(self) -> float:
        """Latest value estimate (0.0 before any iteration)."""
        return self.values[-1] if self.values else 0.0

    def eligible_actions(self) -> List[Action]:
        """Actions that may take part in a backup (self-loops excluded)."""
        return [a for a in self.actions if not a.is_self_loop]

    def __repr__(self) -> str:
        return f"State({self.id!r})"


@dataclass(eq=False)
class Action:
    """
    An action available in a state.

    Attributes:
        name: Direction member or problem-specific string
        state: Owning state
        cost: Non-negative cost paid when the action is taken
        successors: Successor state -> Transition, in insertion order
    """
    name: ActionName
    state: State
    cost: float
    successors: Dict[State, Transition] = field(default_factory=dict)

    @property
    def is_deterministic(self) -> bool:
        return len(self.successors) == 1

    @property
    def is_self_loop(self) -> bool:
        """A deterministic action whose only successor is its own state."""
        return self.is_deterministic and next(iter(self.successors)) is self.state

    def outcomes(self) -> List[Tuple[State, float]]:
        """
        (successor, probability) pairs.

        A single successor is reported with probability 1.0 regardless of
        the stored record.
        """
        if self.is_deterministic:
            return [(next(iter(self.successors)), 1.0)]
        return [(s, t.probability) for s, t in self.successors.items()]

    @property
    def label(self) -> str:
        return action_label(self.name)

    def __repr__(self) -> str:
        return f"Action({self.label!r}, state={self.state.id!r}, cost={self.cost})"


Policy = Mapping[State, Action]
"""Immutable snapshot mapping each non-goal state to its chosen action."""

ValueFunction = Dict[State, float]
"""State -> cost-to-go estimate."""


@dataclass(eq=False)
class Problem:
    """
    A complete planning problem.

    Attributes:
        states: Every state, in discovery order
        goal: Absorbing goal state (value fixed at 0.0)
        initial: Start state, used for reporting only
        epsilon: Convergence threshold on the residual
    """
    states: List[State]
    goal: State
    initial: Optional[State] = None
    epsilon: float = 1e-6
    _index: Dict[str, State] = field(init=False, repr=False)

    def __post_init__(self):
        self._index = {s.id: s for s in self.states}

    def state(self, state_id: str) -> State:
        """Look up a state by id."""
        try:
            return self._index[state_id]
        except KeyError:
            raise InvalidMDPError(f"Unknown state: {state_id!r}") from None

    def __contains__(self, state: State) -> bool:
        return self._index.get(state.id) is state

    def __len__(self) -> int:
        return len(self.states)

    def is_goal(self, state: State) -> bool:
        return state is self.goal

    def non_goal_states(self) -> List[State]:
        return [s for s in self.states if s is not self.goal]

    def values(self) -> ValueFunction:
        """Latest value of every state."""
        return {s: s.value for s in self.states}

    def policy(self) -> Policy:
        """Read-only snapshot of the current best actions."""
        return MappingProxyType({
            s: s.best_action for s in self.non_goal_states()
            if s.best_action is not None
        })

    def reset(self) -> None:
        """Clear value histories and best actions so the model can be re-solved."""
        for state in self.states:
            state.values.clear()
            state.best_action = None

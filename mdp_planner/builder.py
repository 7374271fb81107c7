"""
Problem Construction and Loading

Core Idea:
    The solvers assume a well-formed model. ``ProblemBuilder`` is the single
    place where externally supplied states and actions are checked: unknown
    references, negative costs, malformed distributions, a missing goal and a
    non-positive epsilon are all rejected with ``InvalidMDPError`` before a
    Problem is handed out.

File Format:
    ``load_problem`` reads a JSON document::

        {
          "epsilon": 1e-6,
          "initial": "1,1",
          "goal": "3,2",
          "states": [{"id": "1,1", "x": 1, "y": 1}, ...],
          "actions": [
            {"state": "1,1", "name": "move-east", "cost": 1.0,
             "successors": {"2,1": 0.8, "1,1": 0.2}},
            ...
          ]
        }

    Coordinates are optional; actions keep the order in which they appear.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .model import (
    Action,
    ActionName,
    InvalidMDPError,
    Problem,
    State,
    Transition,
    parse_action_name,
)

PROBABILITY_TOLERANCE = 1e-6


def _is_number(value: Any) -> bool:
    """True for ints and floats; booleans are rejected."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ProblemBuilder:
    """
    Incrementally assemble and validate a Problem.

    Example:
        >>> builder = ProblemBuilder()
        >>> builder.add_state('s0').add_state('s1')
        >>> builder.add_action('s0', 'move-east', 1.0, {'s1': 1.0})
        >>> problem = builder.set_goal('s1').set_initial('s0').build(epsilon=1e-6)
    """

    def __init__(self):
        self._states: Dict[str, Optional[Tuple[int, int]]] = {}
        self._pending: List[Tuple[str, ActionName, float, List[Tuple[str, float]]]] = []
        self._goal: Optional[str] = None
        self._initial: Optional[str] = None

    def add_state(self, state_id: str, coords: Optional[Tuple[int, int]] = None) -> ProblemBuilder:
        """Register a state; ids must be unique."""
        if state_id in self._states:
            raise InvalidMDPError(f"Duplicate state id: {state_id!r}")
        self._states[state_id] = tuple(coords) if coords is not None else None
        return self

    def add_action(
        self,
        state_id: str,
        name: Union[str, ActionName],
        cost: float,
        successors: Mapping[str, float]
    ) -> ProblemBuilder:
        """
        Register an action. References are resolved in ``build``, so states
        may be added after the actions that mention them.

        Args:
            state_id: Owning state
            name: Action name; cardinal names become Direction members
            cost: Non-negative cost
            successors: Successor id -> probability, in enumeration order
        """
        self._pending.append(
            (state_id, parse_action_name(name), cost, list(successors.items()))
        )
        return self

    def set_goal(self, state_id: str) -> ProblemBuilder:
        self._goal = state_id
        return self

    def set_initial(self, state_id: str) -> ProblemBuilder:
        self._initial = state_id
        return self

    @staticmethod
    def _resolve(states: Mapping[str, State], state_id: str, context: str) -> State:
        try:
            return states[state_id]
        except KeyError:
            raise InvalidMDPError(f"{context} references unknown state {state_id!r}") from None

    @classmethod
    def _make_action(
        cls,
        states: Mapping[str, State],
        state_id: str,
        name: ActionName,
        cost: float,
        successors: List[Tuple[str, float]]
    ) -> Action:
        context = f"Action {name!s} of state {state_id!r}"
        owner = cls._resolve(states, state_id, context)

        if not _is_number(cost) or math.isnan(cost) or cost < 0:
            raise InvalidMDPError(f"{context} has invalid cost: {cost!r}")
        if not successors:
            raise InvalidMDPError(f"{context} has no successors")

        action = Action(name=name, state=owner, cost=float(cost))
        for successor_id, probability in successors:
            successor = cls._resolve(states, successor_id, context)
            if successor in action.successors:
                raise InvalidMDPError(f"{context} lists successor {successor_id!r} twice")
            if not _is_number(probability) or not 0.0 < probability <= 1.0 + PROBABILITY_TOLERANCE:
                raise InvalidMDPError(
                    f"{context} has invalid probability {probability!r} for {successor_id!r}"
                )
            action.successors[successor] = Transition(float(probability))

        if len(successors) > 1:
            total = sum(p for _, p in successors)
            if abs(total - 1.0) > PROBABILITY_TOLERANCE:
                raise InvalidMDPError(f"{context} probabilities sum to {total}, expected 1.0")
        return action

    def build(self, epsilon: float) -> Problem:
        """
        Validate everything registered so far and return the Problem.

        Every call creates fresh State and Action objects, so problems built
        by the same builder never share model state.

        Raises:
            InvalidMDPError: On any invariant violation.
        """
        if not _is_number(epsilon) or not epsilon > 0:
            raise InvalidMDPError(f"Epsilon must be positive, got: {epsilon!r}")
        if not self._states:
            raise InvalidMDPError("Problem has no states")
        if self._goal is None:
            raise InvalidMDPError("Problem has no goal state")

        states = {
            state_id: State(state_id, coords) for state_id, coords in self._states.items()
        }
        goal = self._resolve(states, self._goal, "Goal")
        initial = None
        if self._initial is not None:
            initial = self._resolve(states, self._initial, "Initial state")

        for state_id, name, cost, successors in self._pending:
            action = self._make_action(states, state_id, name, cost, successors)
            action.state.actions.append(action)

        return Problem(
            states=list(states.values()),
            goal=goal,
            initial=initial,
            epsilon=float(epsilon)
        )


# =============================================================================
# JSON Loading
# =============================================================================

def _require(data: Any, key: str, context: str) -> Any:
    if not isinstance(data, Mapping):
        raise InvalidMDPError(f"{context} must be a JSON object, got {type(data).__name__}")
    try:
        return data[key]
    except KeyError:
        raise InvalidMDPError(f"{context} is missing required key {key!r}") from None


def _as_list(value: Any, context: str) -> List[Any]:
    if not isinstance(value, list):
        raise InvalidMDPError(f"{context} must be a JSON array, got {type(value).__name__}")
    return value


def _as_number(value: Any, context: str) -> float:
    if not _is_number(value):
        raise InvalidMDPError(f"{context} must be a number, got {value!r}")
    return float(value)


def _as_coordinate(value: Any, context: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidMDPError(f"{context} must be an integer, got {value!r}")
    return value


def _load_state(builder: ProblemBuilder, entry: Any) -> None:
    state_id = str(_require(entry, 'id', "State"))
    context = f"State {state_id!r}"
    coords = None
    if 'x' in entry and 'y' in entry:
        coords = (
            _as_coordinate(entry['x'], f"{context} x"),
            _as_coordinate(entry['y'], f"{context} y"),
        )
    builder.add_state(state_id, coords)


def _load_action(builder: ProblemBuilder, entry: Any) -> None:
    state_id = str(_require(entry, 'state', "Action"))
    name = str(_require(entry, 'name', f"Action of state {state_id!r}"))
    context = f"Action {name} of state {state_id!r}"

    successors = _require(entry, 'successors', context)
    if not isinstance(successors, Mapping):
        raise InvalidMDPError(
            f"{context} successors must be a JSON object, got {type(successors).__name__}"
        )

    builder.add_action(
        state_id,
        name,
        _as_number(_require(entry, 'cost', context), f"{context} cost"),
        {
            str(k): _as_number(v, f"{context} probability for {k!r}")
            for k, v in successors.items()
        }
    )


def problem_from_dict(data: Mapping[str, Any]) -> Problem:
    """
    Build a Problem from the decoded JSON structure described above.

    Raises:
        InvalidMDPError: If keys are missing, values have the wrong type or
            the model is malformed.
    """
    builder = ProblemBuilder()

    for entry in _as_list(_require(data, 'states', "Problem"), "Problem states"):
        _load_state(builder, entry)

    for entry in _as_list(data.get('actions', []), "Problem actions"):
        _load_action(builder, entry)

    builder.set_goal(str(_require(data, 'goal', "Problem")))
    if data.get('initial') is not None:
        builder.set_initial(str(data['initial']))

    return builder.build(epsilon=_as_number(_require(data, 'epsilon', "Problem"), "Epsilon"))


def load_problem(path: Union[str, Path]) -> Problem:
    """
    Load a problem definition from a JSON file.

    Raises:
        OSError: If the file cannot be read.
        InvalidMDPError: If the content is not a valid problem.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as exc:
        raise InvalidMDPError(f"{path} is not valid JSON: {exc}") from exc
    return problem_from_dict(data)

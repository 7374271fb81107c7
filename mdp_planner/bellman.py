"""
Bellman Backup

Core Idea:
    One-step lookahead: the cost of acting in a state is the action cost plus
    the probability-weighted value of where the action leads. The backup
    returns the cheapest such action.

Mathematical Theory:
    .. math::
        (T V)(s) = \\min_{a \\in \\mathcal{A}(s)} \\left[ C(s,a) +
                   \\sum_{s'} P(s'|s,a) V(s') \\right]

    Deterministic actions are the degenerate case :math:`P(s'|s,a) = 1`.
    Self-loop actions (deterministic moves back to the same state) are
    excluded from :math:`\\mathcal{A}(s)`.

Summary:
    ``backup`` is a pure function of the state and a read-only value source.
    Value iteration passes the previous sweep's snapshot; policy iteration
    passes the values of the policy it has just evaluated.
"""

from __future__ import annotations

from typing import Mapping, Optional, Tuple

from .model import Action, InvalidMDPError, State


def expected_cost(action: Action, values: Mapping[State, float]) -> float:
    """
    Expected one-step cost of taking ``action`` under ``values``.

    Raises:
        InvalidMDPError: If a successor has no entry in ``values``.
    """
    total = action.cost
    for successor, probability in action.outcomes():
        try:
            total += probability * values[successor]
        except KeyError:
            raise InvalidMDPError(
                f"Action {action.label!r} of state {action.state.id!r} leads to "
                f"{successor.id!r}, which is not part of the model"
            ) from None
    return total


def backup(state: State, values: Mapping[State, float]) -> Tuple[float, Action]:
    """
    Bellman optimality backup for a single state.

    Actions are scanned in insertion order and a strictly smaller expected
    cost is required to replace the incumbent, so the earliest action wins
    ties.

    Args:
        state: State to back up
        values: Read-only state -> value mapping used for successors

    Returns:
        Tuple of (minimal expected cost, minimizing action).

    Raises:
        InvalidMDPError: If the state has no eligible action or an action
            references a state missing from ``values``.
    """
    best_value = float('inf')
    best_action: Optional[Action] = None

    for action in state.actions:
        if action.is_self_loop:
            continue
        q = expected_cost(action, values)
        if q < best_value:
            best_value = q
            best_action = action

    if best_action is None:
        raise InvalidMDPError(
            f"State {state.id!r} has no eligible actions (self-loops excluded)"
        )
    return best_value, best_action

from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed status transitions.

Used for the WorkOrder and Quote lifecycles.
Usage:
    from workshop.utils.fsm import TransitionValidator
    ORDER_FSM = TransitionValidator({
        'pendiente_asignacion': {'asignada'},
        'asignada': {'en_progreso', 'pendiente_asignacion'},
        ...
    }, guards={'en_progreso': lambda ctx: None if ctx.get('mechanic_id') else 'reason'})
    reason = ORDER_FSM.check(current, target, {'mechanic_id': order.mechanic_id})
    ORDER_FSM.assert_can_transition(current, target, ctx)

`check` is pure and returns None when allowed or a human readable reason.
`assert_can_transition` raises InvalidTransitionError (HTTP 400).
"""
from typing import Any, Callable, Dict, Mapping, Optional, Set
from workshop.errors import InvalidTransitionError

Guard = Callable[[Mapping[str, Any]], Optional[str]]


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status', guards: Optional[Dict[str, Guard]] = None):
        self.graph = graph
        self.field_name = field_name
        self.guards = guards or {}

    @property
    def states(self):
        return list(self.graph.keys())

    def allowed_targets(self, current: str) -> Set[str]:
        return set(self.graph.get(current, set()))

    def check(self, current: str, target: str, context: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        if target not in self.graph:
            return f"Unknown {self.field_name} {target}"
        if target not in self.graph.get(current, set()):
            return f"Invalid {self.field_name} transition {current} -> {target}"
        guard = self.guards.get(target)
        if guard:
            return guard(context or {})
        return None

    def assert_can_transition(self, current: str, target: str, context: Optional[Mapping[str, Any]] = None):
        reason = self.check(current, target, context)
        if reason:
            raise InvalidTransitionError(reason)
        return True

__all__ = ['TransitionValidator']

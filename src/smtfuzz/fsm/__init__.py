from .actions import ACTION_KINDS, Action
from .fsm import FSM, State

__all__ = ["ACTION_KINDS", "Action", "FSM", "State"]

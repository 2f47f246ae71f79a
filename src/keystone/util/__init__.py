from .eventbus import EventBus
from .state import StateStore, create_state

__all__ = ["EventBus", "StateStore", "create_state"]

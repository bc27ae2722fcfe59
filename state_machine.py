# state_machine.py
"""
Holds the engine's current narrative phase and broadcasts transitions.

The state machine performs no legality checks: any state may follow any
other. Callers (the Orchestrator) decide which transitions are allowed.
"""
import enum
import logging
from typing import Callable, List

# --- Data Contracts ---
#
# class StateMachine:
#   - set_state(self, new_state: EngineState) -> None:
#     - Side Effects: When new_state differs from the current state, records
#       the previous state, stores the new one, then calls every listener
#       with (new_state, prev_state) synchronously in registration order.
#     - Invariants: Setting the current state again invokes no listener.
#
#   - subscribe(self, listener) -> Callable[[], None]:
#     - Outputs: An unsubscribe function that removes exactly that listener.
#       Calling it more than once is safe.


class EngineState(enum.Enum):
    VOID = 0
    SINGULARITY = 1
    IGNITION = 2
    GALAXY = 3


StateListener = Callable[[EngineState, EngineState], None]


class StateMachine:
    """
    Single current EngineState plus an ordered list of transition listeners.
    """
    def __init__(self, initial: EngineState = EngineState.VOID):
        self._state = initial
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> EngineState:
        return self._state

    def get_state(self) -> EngineState:
        return self._state

    def is_state(self, state: EngineState) -> bool:
        return self._state is state

    def set_state(self, new_state: EngineState) -> None:
        if new_state is self._state:
            return

        prev_state = self._state
        self._state = new_state
        logging.info(f"State transition: {prev_state.name} -> {new_state.name}")

        # Iterate over a snapshot so a listener may unsubscribe itself.
        for listener in list(self._listeners):
            listener(new_state, prev_state)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        subscribed = True

        def unsubscribe() -> None:
            nonlocal subscribed
            if not subscribed:
                return
            subscribed = False
            # Identity-based removal of this registration only.
            for index, registered in enumerate(self._listeners):
                if registered is listener:
                    del self._listeners[index]
                    return

        return unsubscribe

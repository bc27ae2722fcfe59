# orchestrator.py
"""
Wires the state machine, particle system and audio engine together.

The Orchestrator is the only subscriber to the state machine. It enforces
which input may trigger which transition, runs one-shot enter/exit actions
when a transition happens, and on every tick advances the smoothed
intensity and dispatches the per-state particle kernels.
"""
import heapq
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from audio import AudioEngine
from particle import ParticleSystem
from state_machine import EngineState, StateMachine

# --- Data Contracts ---
#
# class Orchestrator:
#   - __init__(self, particles, audio, params=None, state_machine=None,
#              clock=time.perf_counter):
#     - Inputs:
#       - params: The "engine" section of config.json
#         ("smoothing_factor", "intensity_targets", "galaxy_delay_ms").
#       - clock: Monotonic clock returning seconds.
#   - on_press() / on_release() / on_pointer_move(x, y):
#     - Side Effects: VOID -> SINGULARITY on press, SINGULARITY -> IGNITION
#       on release. Presses and releases in any other state are ignored.
#   - tick(self) -> FrameData:
#     - Side Effects: Fires due timers, advances intensity, runs the
#       kernels for the current state.
#     - Invariants: IGNITION -> GALAXY happens only through the timer
#       scheduled on entering IGNITION, and only if the state is still
#       IGNITION when it fires.

DEFAULT_INTENSITY_TARGETS = {
    EngineState.VOID: 0.0,
    EngineState.SINGULARITY: 1.0,
    EngineState.IGNITION: 1.5,
    EngineState.GALAXY: 0.3,
}


@dataclass
class FrameData:
    """Everything the rendering collaborator reads after a tick."""
    positions: np.ndarray
    colors: np.ndarray
    sizes: np.ndarray
    intensity: float
    state: EngineState
    time: float


class Orchestrator:
    """
    Drives the narrative: VOID -> SINGULARITY -> IGNITION -> GALAXY.
    """
    def __init__(self, particles: ParticleSystem, audio: AudioEngine,
                 params: Optional[Dict[str, Any]] = None,
                 state_machine: Optional[StateMachine] = None,
                 clock: Callable[[], float] = time.perf_counter):
        params = params or {}
        self.particles = particles
        self.audio = audio
        self.state_machine = state_machine or StateMachine()

        self.smoothing_factor = float(params.get('smoothing_factor', 0.05))
        targets = params.get('intensity_targets', {})
        self.intensity_targets = {
            state: float(targets.get(state.name, default))
            for state, default in DEFAULT_INTENSITY_TARGETS.items()
        }
        self.galaxy_delay = float(params.get('galaxy_delay_ms', 4000)) / 1000.0

        self._clock = clock
        self._start = clock()
        self.time = 0.0
        self.intensity = 0.0
        self.pointer_x = 0.0
        self.pointer_y = 0.0

        # (due time, sequence, callback); sequence keeps equal due times FIFO.
        self._timers: List[Tuple[float, int, Callable[[], None]]] = []
        self._timer_seq = itertools.count()

        self._enter_actions = {
            EngineState.SINGULARITY: self._enter_singularity,
            EngineState.IGNITION: self._enter_ignition,
            EngineState.GALAXY: self._enter_galaxy,
        }
        self._exit_actions = {
            EngineState.GALAXY: self._exit_galaxy,
        }
        self._tick_actions = {
            EngineState.VOID: self._tick_void,
            EngineState.SINGULARITY: self._tick_singularity,
            EngineState.IGNITION: self._tick_ignition,
            EngineState.GALAXY: self._tick_galaxy,
        }

        self._unsubscribe = self.state_machine.subscribe(self._on_transition)
        logging.info(
            f"Orchestrator ready (smoothing {self.smoothing_factor}, "
            f"galaxy delay {self.galaxy_delay:.2f}s)."
        )

    @property
    def state(self) -> EngineState:
        return self.state_machine.state

    # --- Input ---

    def on_press(self) -> None:
        if self.state_machine.is_state(EngineState.VOID):
            self.state_machine.set_state(EngineState.SINGULARITY)

    def on_release(self) -> None:
        if self.state_machine.is_state(EngineState.SINGULARITY):
            self.state_machine.set_state(EngineState.IGNITION)

    def on_pointer_move(self, x: float, y: float) -> None:
        """Pointer coordinates normalized to [-1, 1], y up."""
        self.pointer_x = float(np.clip(x, -1.0, 1.0))
        self.pointer_y = float(np.clip(y, -1.0, 1.0))

    # --- Scheduling ---

    def _now(self) -> float:
        return self._clock() - self._start

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Runs callback on the first tick at or after delay seconds from now."""
        heapq.heappush(self._timers, (self._now() + delay, next(self._timer_seq), callback))

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def _run_due_timers(self) -> None:
        while self._timers and self._timers[0][0] <= self.time:
            _, _, callback = heapq.heappop(self._timers)
            callback()

    # --- Transitions ---

    def _on_transition(self, new_state: EngineState, prev_state: EngineState) -> None:
        exit_action = self._exit_actions.get(prev_state)
        if exit_action:
            exit_action()
        enter_action = self._enter_actions.get(new_state)
        if enter_action:
            enter_action()

    def _audio_call(self, operation: str, *args) -> None:
        # Audio is an enhancement: a failure here must never stop the tick loop.
        try:
            getattr(self.audio, operation)(*args)
        except Exception:
            logging.exception(f"Audio operation '{operation}' failed; simulation continues.")

    def _enter_singularity(self) -> None:
        self._audio_call('start_riser')

    def _enter_ignition(self) -> None:
        self._audio_call('trigger_explosion')
        self.particles.explode()
        self.schedule(self.galaxy_delay, self._auto_galaxy)

    def _enter_galaxy(self) -> None:
        self._audio_call('play_galaxy_ambient')

    def _exit_galaxy(self) -> None:
        self._audio_call('reset_galaxy')

    def _auto_galaxy(self) -> None:
        if self.state_machine.is_state(EngineState.IGNITION):
            self.state_machine.set_state(EngineState.GALAXY)
        else:
            logging.debug(f"Galaxy timer fired in {self.state.name}; ignored.")

    # --- Per-tick work ---

    def _tick_void(self) -> None:
        pass

    def _tick_singularity(self) -> None:
        self.particles.compress()
        self._audio_call('modulate_riser', self.intensity)

    def _tick_ignition(self) -> None:
        self.particles.update_expansion()

    def _tick_galaxy(self) -> None:
        self.particles.update_expansion()
        self.particles.update_galaxy(self.time, self.pointer_x, self.pointer_y)

    def tick(self) -> FrameData:
        """
        Advances the engine by one frame.

        Returns:
            FrameData: Buffers and scalars for the renderer. The arrays are
            the live particle buffers, valid until the next tick.
        """
        self.time = self._now()
        self._run_due_timers()

        state = self.state_machine.state
        target = self.intensity_targets[state]
        self.intensity += (target - self.intensity) * self.smoothing_factor
        self.particles.set_intensity(self.intensity)

        self._tick_actions[state]()

        positions, colors, sizes = self.particles.buffers()
        return FrameData(positions, colors, sizes, self.intensity, state, self.time)

    def shutdown(self) -> None:
        self._unsubscribe()
        self._timers.clear()
        self._audio_call('dispose')
        logging.info("Orchestrator shut down.")

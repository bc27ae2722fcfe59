import numpy as np
import pytest
from numpy.testing import assert_array_equal

from audio import AudioEngine
from orchestrator import Orchestrator, FrameData
from particle import ParticleSystem
from state_machine import EngineState


class RecordingParticles:
    """ParticleSystem stand-in that logs which kernels ran."""

    def __init__(self):
        self.calls = []
        self.intensity = 0.0
        self.positions = np.zeros((1, 3))
        self.colors = np.zeros((1, 3), dtype=np.float32)
        self.sizes = np.ones(1, dtype=np.float32)

    def set_intensity(self, intensity):
        self.intensity = intensity

    def compress(self):
        self.calls.append(("compress",))

    def explode(self):
        self.calls.append(("explode",))

    def update_expansion(self):
        self.calls.append(("update_expansion",))

    def update_galaxy(self, time, pointer_x, pointer_y):
        self.calls.append(("update_galaxy", time, pointer_x, pointer_y))

    def buffers(self):
        return self.positions, self.colors, self.sizes

    def names(self):
        return [c[0] for c in self.calls]


class BrokenAudio:
    def __getattr__(self, name):
        def fail(*args):
            raise RuntimeError(f"{name} exploded")
        return fail


@pytest.fixture
def engine(particles, audio, clock):
    return Orchestrator(particles, audio, clock=clock)

@pytest.fixture
def recorder(audio, clock):
    fake = RecordingParticles()
    return Orchestrator(fake, audio, clock=clock), fake


def _reach_galaxy(engine, clock):
    engine.on_press()
    engine.tick()
    engine.on_release()
    clock.advance(4000)
    engine.tick()


def test_void_tick_only_decays_intensity(engine, particles):
    positions = particles.positions.copy()
    frame = engine.tick()
    assert isinstance(frame, FrameData)
    assert frame.state is EngineState.VOID
    assert frame.intensity == 0.0
    assert_array_equal(particles.positions, positions)

def test_release_in_void_is_ignored(engine, audio):
    engine.on_release()
    engine.tick()
    assert engine.state is EngineState.VOID
    assert engine.pending_timers == 0
    assert not audio.riser_active

def test_press_enters_singularity(engine, particles, audio):
    start = np.linalg.norm(particles.positions, axis=1)
    engine.on_press()
    assert engine.state is EngineState.SINGULARITY
    assert audio.riser_active

    for _ in range(10):
        frame = engine.tick()
    assert frame.intensity == pytest.approx(1.0 - 0.95 ** 10)
    assert particles.intensity == frame.intensity
    np.testing.assert_allclose(np.linalg.norm(particles.positions, axis=1), start * 0.85 ** 10)

def test_modulates_riser_with_current_intensity(recorder, monkeypatch):
    orch, _ = recorder
    seen = []
    monkeypatch.setattr(orch.audio, "modulate_riser", seen.append)
    orch.on_press()
    orch.tick()
    orch.tick()
    assert seen == pytest.approx([0.05, 0.05 + 0.95 * 0.05])

def test_release_ignites(engine, particles, audio):
    engine.on_press()
    engine.tick()
    engine.on_release()

    assert engine.state is EngineState.IGNITION
    assert not audio.riser_active
    assert np.all(particles.colors == 1.0)
    assert np.all(np.abs(particles.positions) <= 0.05)
    assert engine.pending_timers == 1

def test_galaxy_follows_after_delay(engine, audio, clock):
    engine.on_press()
    engine.tick()
    engine.on_release()

    clock.advance(3999)
    engine.tick()
    assert engine.state is EngineState.IGNITION
    assert audio.ambient_voice_count == 0

    clock.advance(1)
    frame = engine.tick()
    assert frame.state is EngineState.GALAXY
    assert audio.ambient_voice_count == 4
    assert engine.pending_timers == 0

def test_timer_is_measured_from_the_transition(engine, clock):
    clock.advance(2000)
    engine.on_press()
    engine.tick()
    clock.advance(1000)
    engine.on_release()

    clock.advance(3999)
    engine.tick()
    assert engine.state is EngineState.IGNITION
    clock.advance(1)
    engine.tick()
    assert engine.state is EngineState.GALAXY

def test_stale_timer_does_not_force_galaxy(engine, clock):
    engine.on_press()
    engine.on_release()
    clock.advance(1000)
    engine.state_machine.set_state(EngineState.SINGULARITY)

    clock.advance(4000)
    engine.tick()
    assert engine.state is EngineState.SINGULARITY
    assert engine.pending_timers == 0

def test_second_press_during_ignition_does_not_block_galaxy(engine, clock):
    # Press only acts in VOID, so a press after release leaves the timer alone.
    engine.on_press()
    engine.on_release()
    engine.on_press()
    engine.tick()
    assert engine.state is EngineState.IGNITION

    engine.on_release()
    clock.advance(4000)
    engine.tick()
    assert engine.state is EngineState.GALAXY

    engine.on_press()
    engine.on_release()
    assert engine.state is EngineState.GALAXY

def test_intensity_tracks_state_targets(engine, clock):
    _reach_galaxy(engine, clock)
    for _ in range(400):
        frame = engine.tick()
    assert frame.intensity == pytest.approx(0.3, abs=1e-6)

def test_galaxy_runs_expansion_then_galaxy_kernel(recorder, clock):
    orch, fake = recorder
    _reach_galaxy(orch, clock)
    orch.on_pointer_move(3.0, -0.25)

    fake.calls.clear()
    clock.advance(16)
    orch.tick()
    assert fake.names() == ["update_expansion", "update_galaxy"]
    _, t, px, py = fake.calls[1]
    assert t == pytest.approx(4.016)
    assert (px, py) == (1.0, -0.25)

def test_explode_runs_once_per_ignition(recorder, clock):
    orch, fake = recorder
    orch.on_press()
    orch.on_release()
    for _ in range(5):
        clock.advance(16)
        orch.tick()
    assert fake.names().count("explode") == 1
    assert "compress" not in fake.names()

    orch.state_machine.set_state(EngineState.SINGULARITY)
    orch.on_release()
    assert fake.names().count("explode") == 2

def test_leaving_galaxy_releases_ambient_layer(engine, audio, clock):
    _reach_galaxy(engine, clock)
    assert audio.ambient_voice_count == 4
    engine.state_machine.set_state(EngineState.VOID)
    assert audio.ambient_voice_count == 0

def test_custom_targets_and_delay(particles, audio, clock):
    orch = Orchestrator(
        particles, audio,
        {"smoothing_factor": 0.5, "intensity_targets": {"SINGULARITY": 2.0}, "galaxy_delay_ms": 1000},
        clock=clock,
    )
    orch.on_press()
    assert orch.tick().intensity == pytest.approx(1.0)
    orch.on_release()
    clock.advance(1000)
    orch.tick()
    assert orch.state is EngineState.GALAXY

def test_audio_failures_never_stop_the_loop(particles, clock, caplog):
    orch = Orchestrator(particles, BrokenAudio(), clock=clock)
    _reach_galaxy(orch, clock)
    orch.tick()
    assert orch.state is EngineState.GALAXY
    assert "start_riser" in caplog.text
    orch.shutdown()

def test_full_narrative_without_audio_device(particles, clock):
    def broken(**kwargs):
        raise OSError("no output device")

    audio = AudioEngine(stream_factory=broken)
    audio.init()
    orch = Orchestrator(particles, audio, clock=clock)
    _reach_galaxy(orch, clock)
    assert orch.state is EngineState.GALAXY
    assert audio.ambient_voice_count == 0

def test_shutdown_detaches_and_disposes(engine, audio, stream_factory):
    engine.on_press()
    engine.on_release()
    engine.shutdown()

    assert engine.pending_timers == 0
    assert not audio.available
    assert stream_factory.streams[0].closed
    engine.state_machine.set_state(EngineState.VOID)
    engine.state_machine.set_state(EngineState.IGNITION)
    assert engine.pending_timers == 0

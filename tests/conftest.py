"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from audio import AudioEngine
from particle import ParticleSystem

TEST_SEED = 1234
TEST_COUNT = 256


class ManualClock:
    """Clock driven by the test, counted in whole milliseconds."""

    def __init__(self):
        self.ms = 0

    def advance(self, ms: int) -> None:
        self.ms += ms

    def __call__(self) -> float:
        return self.ms / 1000.0


class FakeStream:
    """Stands in for sounddevice.OutputStream; records lifecycle calls."""

    def __init__(self, fail_on_start=False, **kwargs):
        self.kwargs = kwargs
        self.fail_on_start = fail_on_start
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.fail_on_start:
            raise OSError("device busy")
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True


class StreamFactory:
    def __init__(self, fail_on_start=False):
        self.fail_on_start = fail_on_start
        self.streams = []

    def __call__(self, **kwargs):
        stream = FakeStream(self.fail_on_start, **kwargs)
        self.streams.append(stream)
        return stream


@pytest.fixture
def particle_params() -> dict:
    """Small, seeded particle configuration."""
    return {"particle_count": TEST_COUNT, "seed": TEST_SEED}


@pytest.fixture
def particles(particle_params) -> ParticleSystem:
    return ParticleSystem(particle_params)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def stream_factory() -> StreamFactory:
    return StreamFactory()


@pytest.fixture
def failing_stream_factory() -> StreamFactory:
    """Builds streams whose start() raises, as a busy device does."""
    return StreamFactory(fail_on_start=True)


@pytest.fixture
def audio(stream_factory) -> AudioEngine:
    """Initialized audio engine rendering into a fake output stream."""
    engine = AudioEngine(
        {"sample_rate": 22050, "block_size": 512},
        stream_factory=stream_factory,
        rng=np.random.default_rng(TEST_SEED),
    )
    engine.init()
    return engine

import numpy as np
import pytest

from audio import AudioEngine, Param, lowpass, _biquad_numba
from constants import AMBIENT_FREQUENCIES


def _render_seconds(engine: AudioEngine, seconds: float, block: int = 512) -> np.ndarray:
    blocks = int(np.ceil(seconds * engine.sample_rate / block))
    return np.concatenate([engine.render(block) for _ in range(blocks)])

def _rms(x: np.ndarray) -> float:
    return float(np.sqrt(np.mean(x ** 2)))


def test_init_is_idempotent(audio, stream_factory):
    audio.init()
    audio.init()
    assert len(stream_factory.streams) == 1
    stream = stream_factory.streams[0]
    assert stream.started
    assert stream.kwargs["samplerate"] == 22050
    assert stream.kwargs["channels"] == 1
    assert audio.available

def test_stream_failure_degrades_to_silence():
    def broken(**kwargs):
        raise OSError("no output device")

    engine = AudioEngine(stream_factory=broken)
    engine.init()
    assert not engine.available

    engine.start_riser()
    engine.modulate_riser(0.7)
    engine.trigger_explosion()
    engine.play_galaxy_ambient()
    engine.reset_galaxy()
    assert not engine.riser_active
    assert engine.ambient_voice_count == 0
    assert not np.any(engine.render(256))
    engine.dispose()

def test_disabled_audio_never_opens_a_stream(stream_factory):
    engine = AudioEngine({"enabled": False}, stream_factory=stream_factory)
    engine.init()
    assert stream_factory.streams == []
    assert not engine.available

def test_operations_before_init_are_safe():
    engine = AudioEngine(stream_factory=lambda **kwargs: pytest.fail("stream opened"))
    engine.stop_riser()
    engine.reset_galaxy()
    engine.dispose()
    assert not engine.available

def test_riser_produces_sound(audio):
    assert not np.any(audio.render(512))
    audio.start_riser()
    assert audio.riser_active
    assert _rms(audio.render(2048)) > 0.0

def test_modulate_riser_ramps_toward_targets(audio):
    audio.start_riser()
    audio.modulate_riser(1.0)

    # Right after scheduling the parameters have barely moved.
    audio.render(64)
    assert audio._riser.frequency.value < 200.0

    _render_seconds(audio, 1.0)
    assert audio._riser.frequency.value == pytest.approx(480.0, abs=0.1)
    assert audio._riser.gain.value == pytest.approx(0.4, abs=1e-3)

def test_modulate_without_riser_is_noop(audio):
    audio.modulate_riser(0.5)
    assert not audio.riser_active
    assert audio.active_voice_count == 0

def test_stop_riser_is_safe_to_repeat(audio):
    audio.start_riser()
    audio.stop_riser()
    audio.stop_riser()
    assert not audio.riser_active
    audio.render(512)
    assert audio.active_voice_count == 0

def test_explosion_stops_riser_and_decays(audio):
    audio.start_riser()
    audio.trigger_explosion()
    assert not audio.riser_active

    first = audio.render(512)
    # Riser dropped, noise burst and sub-bass kick remain.
    assert audio.active_voice_count == 2
    assert np.max(np.abs(first)) > 0.05
    assert np.max(np.abs(first)) <= 1.0

    _render_seconds(audio, 1.0)
    assert audio.active_voice_count == 1  # kick stopped at one second

    tail = _render_seconds(audio, 1.0)
    assert audio.active_voice_count == 0
    assert _rms(tail[-512:]) < _rms(first) * 0.05

def test_ambient_voice_count_never_accumulates(audio):
    for _ in range(3):
        audio.play_galaxy_ambient()
        assert audio.ambient_voice_count == len(AMBIENT_FREQUENCIES) == 4
        audio.render(512)
        audio.reset_galaxy()
        assert audio.ambient_voice_count == 0

def test_reset_galaxy_fades_voices_out(audio):
    audio.play_galaxy_ambient()
    audio.render(512)
    audio.reset_galaxy()
    assert audio.active_voice_count == 4  # still fading

    _render_seconds(audio, 1.1)
    assert audio.active_voice_count == 0

def test_dispose_tears_down(audio, stream_factory):
    audio.start_riser()
    audio.play_galaxy_ambient()
    audio.dispose()

    stream = stream_factory.streams[0]
    assert stream.stopped and stream.closed
    assert not audio.available
    assert not audio.riser_active
    assert audio.ambient_voice_count == 0

    audio.dispose()
    audio.start_riser()
    assert not audio.riser_active

def test_callback_fills_output(audio):
    audio.start_riser()
    out = np.zeros((512, 1), dtype=np.float32)
    audio._callback(out, 512, None, None)
    assert np.any(out[:, 0])

def test_callback_outputs_silence_on_render_error(audio, monkeypatch):
    def fail(frames):
        raise RuntimeError("boom")

    monkeypatch.setattr(audio._graph, "render", fail)
    out = np.ones((128, 1), dtype=np.float32)
    audio._callback(out, 128, None, None)
    assert not np.any(out)

def test_param_exponential_ramp():
    p = Param(1.0)
    p.exponential_ramp(0.01, 0.0, 1.0)
    values = p.evaluate(np.array([0.0, 0.5, 1.0, 2.0]))
    np.testing.assert_allclose(values, [1.0, 0.1, 0.01, 0.01])
    assert p.value == pytest.approx(0.01)

def test_param_set_target_time_constant():
    p = Param(0.0)
    p.set_target(1.0, 0.0, 0.1)
    values = p.evaluate(np.array([0.0, 0.1, 1.0]))
    np.testing.assert_allclose(values, [0.0, 1 - np.exp(-1.0), 1 - np.exp(-10.0)])

def test_lowpass_attenuates_high_frequencies():
    sr = 44100
    t = np.arange(sr) / sr
    low = np.sin(2 * np.pi * 100.0 * t)
    high = np.sin(2 * np.pi * 8000.0 * t)

    low_out = lowpass(low, 1000.0, sr)[2000:]
    high_out = lowpass(high, 1000.0, sr)[2000:]
    assert _rms(low_out) / _rms(low[2000:]) > 0.9
    assert _rms(high_out) / _rms(high[2000:]) < 0.1

def test_filter_is_compiled_before_first_explosion(audio):
    compiled = len(_biquad_numba.signatures)
    assert compiled
    audio.trigger_explosion()
    assert len(_biquad_numba.signatures) == compiled

def test_failed_start_closes_the_stream(failing_stream_factory):
    factory = failing_stream_factory
    engine = AudioEngine(stream_factory=factory)
    engine.init()

    assert not engine.available
    assert len(factory.streams) == 1
    assert factory.streams[0].closed
    assert not factory.streams[0].started

# audio.py
"""
Procedural audio for the engine.

Every sound is synthesized here, nothing is decoded from a file. A small
graph of voices (oscillators and noise buffers, each with automatable
frequency and gain) is summed into a master bus and rendered block by block
inside a sounddevice output callback. That callback runs on the audio
driver's own clock; the simulation only schedules parameter changes against
it and never waits for it.
"""
import logging
import threading
import numpy as np
from typing import Any, Callable, Dict, List, Optional
from numba import jit

from constants import (
    RISER_BASE_FREQUENCY, RISER_FREQUENCY_RANGE, RISER_BASE_GAIN, RISER_GAIN_RANGE,
    RISER_LFO_FREQUENCY, RISER_LFO_DEPTH, RISER_TIME_CONSTANT,
    EXPLOSION_NOISE_SECONDS, EXPLOSION_NOISE_CUTOFF, EXPLOSION_NOISE_DECAY,
    EXPLOSION_KICK_START, EXPLOSION_KICK_END, EXPLOSION_KICK_SWEEP, EXPLOSION_KICK_DECAY,
    AMBIENT_FREQUENCIES, AMBIENT_BASE_GAIN, AMBIENT_RELEASE_SECONDS,
)

# --- Data Contracts ---
#
# class AudioEngine:
#   - __init__(self, params: Optional[Dict[str, Any]] = None,
#              stream_factory: Optional[Callable[..., Any]] = None,
#              rng: Optional[np.random.Generator] = None):
#     - Inputs:
#       - params: The "audio" section of config.json ("enabled",
#         "sample_rate", "block_size", "master_gain").
#       - stream_factory: Builds the output stream. Called with the
#         sounddevice.OutputStream keyword arguments; the result must
#         provide start(), stop() and close(). Defaults to sounddevice.
#   - init(self) -> None:
#     - Side Effects: Builds the graph and opens the stream, once. On any
#       failure, logs a warning and leaves the engine unavailable; every
#       later call is then a no-op.
#   - Invariants:
#     - ambient_voice_count is 0 or len(AMBIENT_FREQUENCIES).
#     - No public method blocks on the audio callback beyond a short lock.

BUTTERWORTH_Q = 0.7071


@jit(nopython=True, cache=True)
def _biquad_numba(x, b0, b1, b2, a1, a2):
    """Direct form I biquad over a whole buffer."""
    y = np.empty_like(x)
    x1 = 0.0
    x2 = 0.0
    y1 = 0.0
    y2 = 0.0
    for i in range(x.shape[0]):
        out = b0 * x[i] + b1 * x1 + b2 * x2 - a1 * y1 - a2 * y2
        x2 = x1
        x1 = x[i]
        y2 = y1
        y1 = out
        y[i] = out
    return y

def lowpass(signal: np.ndarray, cutoff: float, sample_rate: int, q: float = BUTTERWORTH_Q) -> np.ndarray:
    """Second-order low-pass (RBJ cookbook coefficients)."""
    w0 = 2.0 * np.pi * cutoff / sample_rate
    alpha = np.sin(w0) / (2.0 * q)
    cos_w0 = np.cos(w0)
    a0 = 1.0 + alpha
    b0 = (1.0 - cos_w0) / 2.0 / a0
    b1 = (1.0 - cos_w0) / a0
    a1 = -2.0 * cos_w0 / a0
    a2 = (1.0 - alpha) / a0
    return _biquad_numba(signal.astype(np.float64), b0, b1, b0, a1, a2)


class Param:
    """
    A voice parameter with one active automation at a time.

    Mirrors the two automation curves the engine needs: an exponential
    approach toward a target with a time constant, and an exponential ramp
    that reaches a value at a given time and then holds it.
    """
    def __init__(self, value: float):
        self.value = float(value)
        self._curve = None

    def set_target(self, target: float, start: float, time_constant: float) -> None:
        self._curve = ("target", float(start), self.value, float(target), float(time_constant))

    def exponential_ramp(self, target: float, start: float, end: float) -> None:
        start_value = max(self.value, 1e-6)
        self._curve = ("ramp", float(start), float(end), start_value, max(float(target), 1e-6))

    def evaluate(self, t: np.ndarray) -> np.ndarray:
        if self._curve is None:
            values = np.full(t.shape, self.value)
        elif self._curve[0] == "target":
            _, start, anchor, target, tau = self._curve
            elapsed = np.maximum(t - start, 0.0)
            values = target + (anchor - target) * np.exp(-elapsed / tau)
        else:
            _, start, end, v0, v1 = self._curve
            frac = np.clip((t - start) / max(end - start, 1e-9), 0.0, 1.0)
            values = v0 * (v1 / v0) ** frac

        if values.size:
            self.value = float(values[-1])
        return values


class Voice:
    """
    One sound source routed through its own gain stage into the master bus.

    shape is "sine", "sawtooth" or "buffer". A buffer voice plays `buffer`
    once from its start time. Oscillators may carry a sine LFO that adds
    lfo_depth Hz of frequency deviation.
    """
    def __init__(self, shape: str, frequency: float = 0.0, gain: float = 1.0,
                 start_time: float = 0.0, stop_time: Optional[float] = None,
                 buffer: Optional[np.ndarray] = None,
                 lfo_frequency: float = 0.0, lfo_depth: float = 0.0):
        self.shape = shape
        self.frequency = Param(frequency)
        self.gain = Param(gain)
        self.start_time = start_time
        self.stop_time = stop_time
        self.buffer = buffer
        self.lfo_frequency = lfo_frequency
        self.lfo_depth = lfo_depth
        self._phase = 0.0
        self._lfo_phase = 0.0
        self._cursor = 0

    def stop(self, when: float) -> None:
        self.stop_time = when

    def finished(self, now: float) -> bool:
        if self.stop_time is not None and now >= self.stop_time:
            return True
        return self.buffer is not None and self._cursor >= self.buffer.size

    def render(self, t: np.ndarray, sample_rate: int) -> np.ndarray:
        n = t.size
        if self.shape == "buffer":
            chunk = self.buffer[self._cursor:self._cursor + n]
            self._cursor += chunk.size
            wave = np.zeros(n)
            wave[:chunk.size] = chunk
        else:
            freq = self.frequency.evaluate(t)
            if self.lfo_depth:
                lfo_phase = self._lfo_phase + 2 * np.pi * self.lfo_frequency * np.arange(1, n + 1) / sample_rate
                freq = freq + self.lfo_depth * np.sin(lfo_phase)
                self._lfo_phase = lfo_phase[-1] % (2 * np.pi)
            phase = self._phase + 2 * np.pi * np.cumsum(freq) / sample_rate
            self._phase = phase[-1] % (2 * np.pi)
            if self.shape == "sawtooth":
                wave = 2.0 * ((phase / (2 * np.pi)) % 1.0) - 1.0
            else:
                wave = np.sin(phase)

        out = wave * self.gain.evaluate(t)
        out[t < self.start_time] = 0.0
        if self.stop_time is not None:
            out[t >= self.stop_time] = 0.0
        return out


class AudioGraph:
    """Voices summed into a master gain, advanced by a sample clock."""
    def __init__(self, sample_rate: int, master_gain: float):
        self.sample_rate = sample_rate
        self.master_gain = master_gain
        self.voices: List[Voice] = []
        self._clock = 0

    @property
    def time(self) -> float:
        """Audio clock in seconds: the time of the next sample to render."""
        return self._clock / self.sample_rate

    def connect(self, voice: Voice) -> Voice:
        self.voices.append(voice)
        return voice

    def render(self, frames: int) -> np.ndarray:
        t = (self._clock + np.arange(frames)) / self.sample_rate
        mix = np.zeros(frames)
        for voice in self.voices:
            mix += voice.render(t, self.sample_rate)
        self._clock += frames

        now = self.time
        self.voices = [v for v in self.voices if not v.finished(now)]
        return np.clip(mix * self.master_gain, -1.0, 1.0).astype(np.float32)


def _sounddevice_stream(**kwargs):
    # Imported lazily: the module raises OSError when PortAudio is missing.
    import sounddevice as sd
    return sd.OutputStream(**kwargs)


class AudioEngine:
    """
    Owns the audio graph and the output stream, and exposes the one-shot and
    continuous sound operations the Orchestrator triggers.
    """
    def __init__(self, params: Optional[Dict[str, Any]] = None,
                 stream_factory: Optional[Callable[..., Any]] = None,
                 rng: Optional[np.random.Generator] = None):
        params = params or {}
        self.enabled = bool(params.get('enabled', True))
        self.sample_rate = int(params.get('sample_rate', 44100))
        self.block_size = int(params.get('block_size', 512))
        self.master_gain = float(params.get('master_gain', 0.3))
        self.rng = rng if rng is not None else np.random.default_rng()

        self._stream_factory = stream_factory or _sounddevice_stream
        self._lock = threading.Lock()
        self._initialized = False
        self._graph: Optional[AudioGraph] = None
        self._stream = None
        self._riser: Optional[Voice] = None
        self._ambient: List[Voice] = []
        self._callback_failed = False

    @property
    def available(self) -> bool:
        return self._graph is not None

    @property
    def ambient_voice_count(self) -> int:
        return len(self._ambient)

    @property
    def riser_active(self) -> bool:
        return self._riser is not None

    @property
    def active_voice_count(self) -> int:
        return len(self._graph.voices) if self._graph is not None else 0

    def init(self) -> None:
        if self._initialized:
            return
        self._initialized = True

        if not self.enabled:
            logging.info("Audio disabled by configuration.")
            return

        graph = AudioGraph(self.sample_rate, self.master_gain)
        # The callback renders from self._graph, so it must exist before start().
        self._graph = graph
        # Compile the noise filter now rather than at the first explosion.
        lowpass(np.zeros(8), EXPLOSION_NOISE_CUTOFF, self.sample_rate)

        stream = None
        try:
            stream = self._stream_factory(
                samplerate=self.sample_rate, blocksize=self.block_size,
                channels=1, dtype="float32", callback=self._callback
            )
            stream.start()
        except Exception as e:
            self._graph = None
            logging.warning(f"Audio output unavailable, continuing without sound: {e}")
            if stream is not None:
                try:
                    stream.close()
                except Exception as close_error:
                    logging.warning(f"Error while closing audio stream: {close_error}")
            return

        self._stream = stream
        logging.info(
            f"AudioEngine initialized ({self.sample_rate} Hz, block {self.block_size}, "
            f"master gain {self.master_gain})."
        )

    def _callback(self, outdata, frames, time_info, status) -> None:
        if status:
            logging.debug(f"Audio stream status: {status}")
        try:
            block = self.render(frames)
        except Exception:
            if not self._callback_failed:
                logging.exception("Audio render failed; outputting silence.")
                self._callback_failed = True
            block = np.zeros(frames, dtype=np.float32)
        outdata[:, 0] = block

    def render(self, frames: int) -> np.ndarray:
        """Renders the next block of the master bus (silence when unavailable)."""
        with self._lock:
            if self._graph is None:
                return np.zeros(frames, dtype=np.float32)
            return self._graph.render(frames)

    def start_riser(self) -> None:
        if self._graph is None:
            return
        with self._lock:
            now = self._graph.time
            if self._riser is not None:
                self._riser.stop(now)
            self._riser = self._graph.connect(Voice(
                "sawtooth", frequency=RISER_BASE_FREQUENCY, gain=RISER_BASE_GAIN,
                start_time=now, lfo_frequency=RISER_LFO_FREQUENCY, lfo_depth=RISER_LFO_DEPTH
            ))
        logging.debug("Riser started.")

    def modulate_riser(self, intensity: float) -> None:
        if self._graph is None or self._riser is None:
            return
        with self._lock:
            now = self._graph.time
            self._riser.frequency.set_target(
                RISER_BASE_FREQUENCY + intensity * RISER_FREQUENCY_RANGE, now, RISER_TIME_CONSTANT
            )
            self._riser.gain.set_target(
                RISER_BASE_GAIN + intensity * RISER_GAIN_RANGE, now, RISER_TIME_CONSTANT
            )

    def stop_riser(self) -> None:
        if self._riser is None:
            return
        with self._lock:
            if self._graph is not None:
                self._riser.stop(self._graph.time)
            self._riser = None
        logging.debug("Riser stopped.")

    def trigger_explosion(self) -> None:
        if self._graph is None:
            return
        self.stop_riser()

        noise = self.rng.uniform(-1.0, 1.0, int(self.sample_rate * EXPLOSION_NOISE_SECONDS))
        filtered = lowpass(noise, EXPLOSION_NOISE_CUTOFF, self.sample_rate)

        with self._lock:
            now = self._graph.time
            burst = Voice("buffer", gain=1.0, start_time=now, buffer=filtered)
            burst.gain.exponential_ramp(0.01, now, now + EXPLOSION_NOISE_DECAY)
            self._graph.connect(burst)

            kick = Voice("sine", frequency=EXPLOSION_KICK_START, gain=1.0,
                         start_time=now, stop_time=now + EXPLOSION_KICK_DECAY)
            kick.frequency.exponential_ramp(EXPLOSION_KICK_END, now, now + EXPLOSION_KICK_SWEEP)
            kick.gain.exponential_ramp(0.01, now, now + EXPLOSION_KICK_DECAY)
            self._graph.connect(kick)
        logging.debug("Explosion cue triggered.")

    def play_galaxy_ambient(self) -> None:
        if self._graph is None:
            return
        with self._lock:
            now = self._graph.time
            for k, freq in enumerate(AMBIENT_FREQUENCIES):
                voice = Voice("sine", frequency=freq, gain=AMBIENT_BASE_GAIN / (k + 1), start_time=now)
                self._ambient.append(self._graph.connect(voice))
        logging.debug(f"Ambient layer started with {len(AMBIENT_FREQUENCIES)} voices.")

    def reset_galaxy(self) -> None:
        """Fades out the ambient layer over one second and forgets it."""
        if not self._ambient:
            return
        with self._lock:
            if self._graph is not None:
                now = self._graph.time
                release = now + AMBIENT_RELEASE_SECONDS
                for voice in self._ambient:
                    voice.gain.exponential_ramp(0.001, now, release)
                    voice.stop(release)
            self._ambient = []
        logging.debug("Ambient layer released.")

    def dispose(self) -> None:
        self.stop_riser()
        self.reset_galaxy()
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logging.warning(f"Error while closing audio stream: {e}")
            self._stream = None
        with self._lock:
            self._graph = None
        logging.info("AudioEngine disposed.")

# particle.py
"""
Manages the state of all particles in the engine.

This module defines the ParticleSystem class, which owns the columnar
particle buffers (position, velocity, galaxy target, color, size) as NumPy
arrays and exposes one update kernel per narrative phase. The per-particle
loops are Numba-jitted. The system never knows which phase is active: the
caller chooses which kernel to run each tick.
"""
import logging
import numpy as np
from typing import Dict, Any, Optional, Tuple
from numba import jit

from constants import THEMES, DEFAULT_THEME, PARTICLE_SATURATION, PARTICLE_LIGHTNESS
from utils import hsl_to_rgb

# --- Data Contracts ---
#
# class ParticleSystem:
#   - __init__(self, params: Dict[str, Any], rng: Optional[np.random.Generator] = None):
#     - Inputs:
#       - params: The "particles" section of config.json.
#         - "particle_count": int (required)
#         - "seed", "base_size", "theme", "galaxy_*", "ignition_force",
#           "drag_coefficient", ... (optional, see DEFAULTS)
#       - rng: Optional random source. When omitted one is built from "seed".
#     - Side Effects: Allocates the particle buffers and precomputes the
#       galaxy targets.
#     - Invariants:
#       - self.positions, self.velocities, self.galaxy_targets are float64
#         arrays of shape (N, 3).
#       - self.colors is a float32 array of shape (N, 3), channels in [0, 1].
#       - self.sizes is a float32 array of shape (N,), never mutated.
#       - self.galaxy_targets is read-only after construction.
#       - N never changes.
#
#   - compress(), explode(), update_expansion(), update_galaxy(...):
#     - Side Effects: Mutate the buffers in place. Each call is one tick;
#       no elapsed-time scaling is applied.

DEFAULTS = {
    "seed": None,
    "base_size": 0.6,
    "theme": DEFAULT_THEME,
    "spawn_radius_min": 50.0,
    "spawn_radius_max": 250.0,
    "vertical_squash": 0.1,
    "initial_velocity": 0.1,
    "galaxy_radius": 60.0,
    "galaxy_arms": 5,
    "galaxy_spin": 3.5,
    "galaxy_jitter": 1.5,
    "galaxy_height": 4.0,
    "ignition_force": 150.0,
    "drag_coefficient": 0.965,
    "compression_factor": 0.85,
    "galaxy_lerp": 0.005,
    "galaxy_rotation_rate": 0.0003,
    "pointer_gain_x": 0.00002,
    "pointer_bound_x": 30.0,
    "pointer_gain_y": 0.00001,
    "pointer_bound_y": 20.0,
}

# Heating toward the core color while compressing: per-tick step and ceiling.
COMPRESS_COLOR_STEP = (0.05, 0.04, 0.02)
COMPRESS_COLOR_CEILING = (1.0, 0.9, 0.8)

# Cooling toward the galaxy palette: red and green fall to a floor, blue rises.
EXPANSION_COLOR_STEP = (-0.01, -0.005, 0.01)
EXPANSION_COLOR_LIMIT = (0.3, 0.5, 1.0)

# Vertical component of a fresh explosion direction, before normalization.
EXPLOSION_VERTICAL_SCALE = 0.3
EXPLOSION_JITTER = 0.1
EXPLOSION_VARIATION = (0.2, 1.0)


@jit(nopython=True, cache=True)
def _compress_numba(positions, colors, factor, step_r, step_g, step_b, max_r, max_g, max_b):
    """Geometric pull toward the origin plus clamped heating of the colors."""
    for i in range(positions.shape[0]):
        positions[i, 0] *= factor
        positions[i, 1] *= factor
        positions[i, 2] *= factor

        colors[i, 0] = min(colors[i, 0] + step_r, max_r)
        colors[i, 1] = min(colors[i, 1] + step_g, max_g)
        colors[i, 2] = min(colors[i, 2] + step_b, max_b)

@jit(nopython=True, cache=True)
def _explode_numba(positions, velocities, colors, jitter, directions, variation, force, vertical_scale):
    """
    Resets every particle to a point near the origin with an outward velocity.

    directions holds raw, centered random vectors; the vertical component is
    flattened before normalization so the blast spreads mostly in-plane.
    """
    for i in range(positions.shape[0]):
        positions[i, 0] = jitter[i, 0]
        positions[i, 1] = jitter[i, 1]
        positions[i, 2] = jitter[i, 2]

        vx = directions[i, 0]
        vy = directions[i, 1] * vertical_scale
        vz = directions[i, 2]
        length = np.sqrt(vx * vx + vy * vy + vz * vz)
        if length == 0.0:
            length = 1.0
        speed = force * variation[i] / length

        velocities[i, 0] = vx * speed
        velocities[i, 1] = vy * speed
        velocities[i, 2] = vz * speed

        colors[i, 0] = 1.0
        colors[i, 1] = 1.0
        colors[i, 2] = 1.0

@jit(nopython=True, cache=True)
def _expansion_numba(positions, velocities, targets, colors, drag, lerp,
                     step_r, step_g, step_b, floor_r, floor_g, ceil_b):
    """Euler step, drag, relaxation toward the galaxy target and color fade."""
    for i in range(positions.shape[0]):
        for k in range(3):
            positions[i, k] += velocities[i, k]
            velocities[i, k] *= drag
            positions[i, k] += (targets[i, k] - positions[i, k]) * lerp

        colors[i, 0] = max(colors[i, 0] + step_r, floor_r)
        colors[i, 1] = max(colors[i, 1] + step_g, floor_g)
        colors[i, 2] = min(colors[i, 2] + step_b, ceil_b)

@jit(nopython=True, cache=True)
def _galaxy_numba(positions, angle, pointer_x, pointer_y, gain_x, bound_x, gain_y, bound_y):
    """
    Spins the disk about the vertical axis and nudges it toward the pointer.

    The falloff (bound - |coordinate|) turns negative beyond the bound, so
    particles far out are pushed the opposite way. This is kept signed.
    """
    c = np.cos(angle)
    s = np.sin(angle)
    for i in range(positions.shape[0]):
        x = positions[i, 0]
        z = positions[i, 2]
        positions[i, 0] = x * c - z * s
        positions[i, 2] = x * s + z * c

        positions[i, 0] += pointer_x * gain_x * (bound_x - abs(positions[i, 0]))
        positions[i, 1] -= pointer_y * gain_y * (bound_y - abs(positions[i, 1]))


class ParticleSystem:
    """
    A container for all particles, managing their state via NumPy arrays.
    """
    def __init__(self, params: Dict[str, Any], rng: Optional[np.random.Generator] = None):
        """
        Initializes the particle system.

        Args:
            params (Dict[str, Any]): The "particles" config section.
            rng (Optional[np.random.Generator]): Random source. Built from
                params["seed"] when omitted.
        """
        settings = dict(DEFAULTS)
        settings.update(params)
        self._validate(settings)

        self.particle_count = int(settings['particle_count'])
        self.base_size = float(settings['base_size'])
        self.theme = THEMES[settings['theme']]
        self.seed = settings['seed']
        self.rng = rng if rng is not None else np.random.default_rng(self.seed)

        self.galaxy_radius = float(settings['galaxy_radius'])
        self.galaxy_arms = int(settings['galaxy_arms'])
        self.galaxy_spin = float(settings['galaxy_spin'])
        self.galaxy_jitter = float(settings['galaxy_jitter'])
        self.galaxy_height = float(settings['galaxy_height'])
        self.ignition_force = float(settings['ignition_force'])
        self.drag_coefficient = float(settings['drag_coefficient'])
        self.compression_factor = float(settings['compression_factor'])
        self.galaxy_lerp = float(settings['galaxy_lerp'])
        self.galaxy_rotation_rate = float(settings['galaxy_rotation_rate'])
        self.pointer_gain = (float(settings['pointer_gain_x']), float(settings['pointer_gain_y']))
        self.pointer_bound = (float(settings['pointer_bound_x']), float(settings['pointer_bound_y']))

        # Only consumed by the rendering collaborator.
        self.intensity = 0.0

        self.positions = self._spawn_positions(
            settings['spawn_radius_min'], settings['spawn_radius_max'], settings['vertical_squash']
        )
        self.velocities = (self.rng.random((self.particle_count, 3)) - 0.5) * settings['initial_velocity']
        self.colors = self._spawn_colors()
        self.sizes = (
            self.base_size * (self.rng.random(self.particle_count) * 0.8 + 0.2)
        ).astype(np.float32)

        self.galaxy_targets = self._generate_galaxy_targets()
        self.galaxy_targets.setflags(write=False)

        self._warm_up_kernels()

        logging.info(
            f"ParticleSystem initialized with {self.particle_count} particles "
            f"({self.theme['name']} theme, {self.galaxy_arms} arms)."
        )
        logging.debug(
            f"Particle data arrays created. "
            f"Positions shape: {self.positions.shape}, "
            f"Velocities shape: {self.velocities.shape}, "
            f"Targets shape: {self.galaxy_targets.shape}, "
            f"Colors shape: {self.colors.shape}, "
            f"Sizes shape: {self.sizes.shape}"
        )

    @staticmethod
    def _validate(settings: Dict[str, Any]) -> None:
        problems = []
        if int(settings['particle_count']) <= 0:
            problems.append(f"particle_count must be positive, got {settings['particle_count']}")
        if int(settings['galaxy_arms']) < 1:
            problems.append(f"galaxy_arms must be at least 1, got {settings['galaxy_arms']}")
        if float(settings['galaxy_radius']) <= 0:
            problems.append(f"galaxy_radius must be positive, got {settings['galaxy_radius']}")
        for key in ('drag_coefficient', 'compression_factor'):
            if not 0.0 < float(settings[key]) < 1.0:
                problems.append(f"{key} must lie in (0, 1), got {settings[key]}")
        if float(settings['spawn_radius_min']) > float(settings['spawn_radius_max']):
            problems.append("spawn_radius_min exceeds spawn_radius_max")
        if settings['theme'] not in THEMES:
            problems.append(f"unknown theme '{settings['theme']}' (choose from {sorted(THEMES)})")

        if problems:
            msg = "Configuration error in particles section: " + "; ".join(problems)
            logging.critical(msg)
            raise ValueError(msg)

    def _warm_up_kernels(self) -> None:
        """
        Compiles every kernel on one-row scratch buffers.

        Argument types must match the live calls exactly, including the
        read-only target buffer, or numba compiles a second signature on
        the first real call and the tick stalls.
        """
        positions = np.zeros((1, 3), dtype=np.float64)
        velocities = np.zeros((1, 3), dtype=np.float64)
        colors = np.ones((1, 3), dtype=np.float32)
        targets = np.zeros((1, 3), dtype=np.float64)
        targets.setflags(write=False)

        _compress_numba(positions, colors, self.compression_factor,
                        *COMPRESS_COLOR_STEP, *COMPRESS_COLOR_CEILING)
        _explode_numba(positions, velocities, colors,
                       np.zeros((1, 3)), np.ones((1, 3)), np.ones(1),
                       self.ignition_force, EXPLOSION_VERTICAL_SCALE)
        _expansion_numba(positions, velocities, targets, colors,
                         self.drag_coefficient, self.galaxy_lerp,
                         *EXPANSION_COLOR_STEP, *EXPANSION_COLOR_LIMIT)
        _galaxy_numba(positions, 0.0, 0.0, 0.0,
                      self.pointer_gain[0], self.pointer_bound[0],
                      self.pointer_gain[1], self.pointer_bound[1])

    def _spawn_positions(self, radius_min: float, radius_max: float, squash: float) -> np.ndarray:
        """Random points on a sphere shell range, flattened along the vertical axis."""
        n = self.particle_count
        r = self.rng.uniform(radius_min, radius_max, n)
        theta = self.rng.random(n) * np.pi * 2
        phi = np.arccos(self.rng.random(n) * 2 - 1)

        positions = np.empty((n, 3), dtype=np.float64)
        positions[:, 0] = r * np.sin(phi) * np.cos(theta)
        positions[:, 1] = r * np.sin(phi) * np.sin(theta) * squash
        positions[:, 2] = r * np.cos(phi)
        return positions

    def _spawn_colors(self) -> np.ndarray:
        n = self.particle_count
        hue_min, hue_max = self.theme['particle_hue']
        light_min, light_max = PARTICLE_LIGHTNESS
        hue = hue_min + self.rng.random(n) * (hue_max - hue_min)
        lightness = light_min + self.rng.random(n) * (light_max - light_min)
        return hsl_to_rgb(hue, np.full(n, PARTICLE_SATURATION), lightness)

    def _generate_galaxy_targets(self) -> np.ndarray:
        """
        Precomputes the resting spiral position of every particle.

        Radii are biased toward the center (random ** 1.5) and the disk
        thins linearly toward the rim.
        """
        n = self.particle_count
        arm_index = np.arange(n) % self.galaxy_arms
        radius = self.rng.random(n) ** 1.5 * self.galaxy_radius
        angle = radius * self.galaxy_spin + (arm_index / self.galaxy_arms) * np.pi * 2
        thickness = 1.0 - radius / self.galaxy_radius

        targets = np.empty((n, 3), dtype=np.float64)
        targets[:, 0] = np.cos(angle) * radius + (self.rng.random(n) - 0.5) * self.galaxy_jitter
        targets[:, 1] = (self.rng.random(n) - 0.5) * thickness * self.galaxy_height
        targets[:, 2] = np.sin(angle) * radius + (self.rng.random(n) - 0.5) * self.galaxy_jitter
        return targets

    def set_intensity(self, intensity: float) -> None:
        """Stores the drive scalar for the renderer. No effect on the physics."""
        self.intensity = float(intensity)

    def compress(self) -> None:
        _compress_numba(
            self.positions, self.colors, self.compression_factor,
            *COMPRESS_COLOR_STEP, *COMPRESS_COLOR_CEILING
        )

    def explode(self) -> None:
        """
        One-shot reset on entering the explosive phase.

        Guarding against repeat calls is the caller's job.
        """
        n = self.particle_count
        jitter = (self.rng.random((n, 3)) - 0.5) * EXPLOSION_JITTER
        directions = self.rng.random((n, 3)) - 0.5
        low, high = EXPLOSION_VARIATION
        variation = low + self.rng.random(n) * (high - low)

        _explode_numba(
            self.positions, self.velocities, self.colors,
            jitter, directions, variation, self.ignition_force, EXPLOSION_VERTICAL_SCALE
        )
        logging.debug(f"Explosion reset applied to {n} particles (force {self.ignition_force}).")

    def update_expansion(self) -> None:
        _expansion_numba(
            self.positions, self.velocities, self.galaxy_targets, self.colors,
            self.drag_coefficient, self.galaxy_lerp,
            *EXPANSION_COLOR_STEP, *EXPANSION_COLOR_LIMIT
        )

    def update_galaxy(self, time: float, pointer_x: float, pointer_y: float) -> None:
        """
        Settled-phase motion, layered on top of update_expansion().

        Args:
            time (float): Seconds since the engine started; sets the spin angle.
            pointer_x (float): Pointer x normalized to [-1, 1].
            pointer_y (float): Pointer y normalized to [-1, 1], up positive.
        """
        _galaxy_numba(
            self.positions, time * self.galaxy_rotation_rate,
            float(pointer_x), float(pointer_y),
            self.pointer_gain[0], self.pointer_bound[0],
            self.pointer_gain[1], self.pointer_bound[1]
        )

    def mean_speed(self) -> float:
        return float(np.mean(np.linalg.norm(self.velocities, axis=1)))

    def buffers(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(positions, colors, sizes) as handed to the renderer."""
        return self.positions, self.colors, self.sizes

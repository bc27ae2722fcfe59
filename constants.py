# constants.py
"""
Application-level constants.

These values are static and do not change between runs. They cover the
presentation side of the engine (themes, status text, per-state glow and
camera shake) and the fixed voicing of the synthesized audio, which are
not part of the experimental configuration in `config.json`.
"""

# Visualization settings
# Set to True to run in borderless fullscreen mode.
FULLSCREEN = False
FPS = 60
BACKGROUND_COLOR = (0, 0, 0)
HUD_TEXT_COLOR = (200, 200, 200)
HUD_VALUE_COLOR = (255, 255, 255)

# --- Camera ---
CAMERA_POSITION = (0.0, 20.0, 120.0)
CAMERA_FOV_DEGREES = 60.0
CAMERA_NEAR = 0.1
CAMERA_FAR = 1000.0

# Alpha value for the motion blur effect (0-255). Lower is a longer trail.
MOTION_BLUR_ALPHA = 90
# Point size (in pixels) of a particle with size 1.0 at unit depth scale.
POINT_SCALE = 220.0

# --- Themes ---
# particle_hue is the [min, max] range sampled for each particle's hue.
THEMES = {
    "cosmic": {
        "name": "Cosmic",
        "core_color": (1.0, 0.9, 0.5),
        "edge_color": (0.0, 0.5, 1.0),
        "bloom_strength": 2.5,
        "particle_hue": (0.6, 0.8),
    },
    "inferno": {
        "name": "Inferno",
        "core_color": (1.0, 1.0, 0.5),
        "edge_color": (1.0, 0.2, 0.0),
        "bloom_strength": 3.0,
        "particle_hue": (0.0, 0.15),
    },
    "aurora": {
        "name": "Aurora",
        "core_color": (0.5, 1.0, 0.8),
        "edge_color": (0.5, 0.0, 1.0),
        "bloom_strength": 2.0,
        "particle_hue": (0.3, 0.8),
    },
}
DEFAULT_THEME = "cosmic"

# Fixed HSL saturation and lightness range for initial particle colors.
PARTICLE_SATURATION = 0.5
PARTICLE_LIGHTNESS = (0.3, 0.7)

# --- Per-state presentation ---
# Keyed by EngineState name so this module stays free of engine imports.
STATUS_MESSAGES = {
    "VOID": "SYSTEM IDLE. CLICK & HOLD TO COMPRESS.",
    "SINGULARITY": "CRITICAL: COMPRESSING...",
    "IGNITION": "EXPANSION DETECTED",
    "GALAXY": "GALAXY STABLE",
}
# (strength, radius) of the glow pass entered with each state.
BLOOM_BY_STATE = {
    "VOID": (2.5, 0.55),
    "SINGULARITY": (4.0, 1.0),
    "IGNITION": (8.0, 1.5),
    "GALAXY": (2.0, 0.6),
}
CAMERA_SHAKE = {
    "SINGULARITY": 0.2,
}

# --- Audio voicing ---
RISER_BASE_FREQUENCY = 80.0
RISER_FREQUENCY_RANGE = 400.0
RISER_BASE_GAIN = 0.1
RISER_GAIN_RANGE = 0.3
RISER_LFO_FREQUENCY = 8.0
RISER_LFO_DEPTH = 20.0
RISER_TIME_CONSTANT = 0.1

EXPLOSION_NOISE_SECONDS = 2.0
EXPLOSION_NOISE_CUTOFF = 1000.0
EXPLOSION_NOISE_DECAY = 1.5
EXPLOSION_KICK_START = 150.0
EXPLOSION_KICK_END = 30.0
EXPLOSION_KICK_SWEEP = 0.5
EXPLOSION_KICK_DECAY = 1.0

AMBIENT_FREQUENCIES = (110.0, 165.0, 220.0, 330.0)
AMBIENT_BASE_GAIN = 0.02
AMBIENT_RELEASE_SECONDS = 1.0

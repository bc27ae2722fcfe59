# utils.py
"""
Utility functions for the engine framework.

This module provides helper functions, such as logging setup, config
loading and color conversion, that are used across different parts of the
application but do not belong to a specific domain like physics or audio.
"""
import logging
import logging.handlers
import json
import os
from typing import Dict, Any

import numpy as np

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs:
#     - config: A dictionary containing a "logging" key with "level",
#       "format", and "log_file" sub-keys.
#   - Outputs: None
#   - Side Effects: Configures the root Python logger. Creates a log
#     directory if it doesn't exist. Sets up a console handler and a
#     rotating file handler.
#   - Invariants: After this function runs, the logging system is
#     initialized and ready for use throughout the application.
#
# hsl_to_rgb(h, s, l) -> np.ndarray:
#   - Inputs: array-likes of equal shape (N,), hue wraps modulo 1,
#     saturation and lightness are clamped to [0, 1].
#   - Outputs: float32 array of shape (N, 3), every channel in [0, 1].

def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configures the logging system from a configuration dictionary.

    Sets up logging to both the console and a rotating file.
    """
    log_config = config.get('logging', {})
    log_level = log_config.get('level', 'INFO').upper()
    log_format = log_config.get('format', '%(asctime)s - %(levelname)s - %(message)s')
    log_file_path = log_config.get('log_file', 'logs/genesis.log')

    # Ensure the log directory exists
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplication
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotates when the log reaches 1MB, keeps 5 backup logs.
    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path, maxBytes=1024*1024, backupCount=5
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logging.info("Logging system initialized.")
    logging.debug(f"Log level set to {log_level}.")
    logging.debug(f"Log file path: {log_file_path}")

def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            config = json.load(f)
        logging.info("Configuration loaded successfully.")
        return config
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError:
        logging.error(f"Error decoding JSON from {path}.")
        raise

def _hue_to_channel(p: np.ndarray, q: np.ndarray, t: np.ndarray) -> np.ndarray:
    t = np.mod(t, 1.0)
    return np.where(
        t < 1.0 / 6.0, p + (q - p) * 6.0 * t,
        np.where(
            t < 0.5, q,
            np.where(t < 2.0 / 3.0, p + (q - p) * 6.0 * (2.0 / 3.0 - t), p)
        )
    )

def hsl_to_rgb(h, s, l) -> np.ndarray:
    """
    Vectorized HSL to RGB conversion.

    Args:
        h: Hue, wraps modulo 1.
        s: Saturation in [0, 1].
        l: Lightness in [0, 1].

    Returns:
        np.ndarray: float32 array of shape (N, 3).
    """
    h = np.mod(np.asarray(h, dtype=np.float64), 1.0)
    s = np.clip(np.asarray(s, dtype=np.float64), 0.0, 1.0)
    l = np.clip(np.asarray(l, dtype=np.float64), 0.0, 1.0)
    h, s, l = np.broadcast_arrays(h, s, l)

    q = np.where(l <= 0.5, l * (1.0 + s), l + s - l * s)
    p = 2.0 * l - q

    # With zero saturation p == q == l, so every channel collapses to grey.
    rgb = np.stack([
        _hue_to_channel(p, q, h + 1.0 / 3.0),
        _hue_to_channel(p, q, h),
        _hue_to_channel(p, q, h - 1.0 / 3.0),
    ], axis=-1)
    return rgb.astype(np.float32)

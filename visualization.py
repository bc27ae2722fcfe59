# visualization.py
"""
Handles the visualization of the engine using Pygame.

The Visualizer is the rendering collaborator: after each tick it reads the
particle buffers, projects them through a fixed perspective camera, splats
them additively with a glow pass scaled by the intensity scalar, and draws
a small HUD. It also turns mouse input into press/release/pointer events
for the Orchestrator.
"""
import logging
import pygame
import numpy as np
from typing import Any, Dict, Optional, Tuple

from constants import (
    BACKGROUND_COLOR, FULLSCREEN, FPS, HUD_TEXT_COLOR, HUD_VALUE_COLOR,
    CAMERA_POSITION, CAMERA_FOV_DEGREES, CAMERA_NEAR, CAMERA_FAR,
    MOTION_BLUR_ALPHA, POINT_SCALE, STATUS_MESSAGES, BLOOM_BY_STATE, CAMERA_SHAKE,
    THEMES, DEFAULT_THEME,
)

# Forward reference for type hinting to avoid circular import
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from orchestrator import FrameData, Orchestrator


# --- Data Contracts ---
#
# project_points(positions, camera, fov_degrees, width, height) -> Tuple:
#   - Inputs:
#     - positions: (N, 3) world coordinates.
#     - camera: (x, y, z) camera position; the camera looks down -z.
#   - Outputs: (xs, ys, depth, visible) where xs/ys are integer pixel
#     coordinates, depth the distance along the view axis, visible a boolean
#     mask of points inside the frustum and the window.
#
# class Visualizer:
#   - handle_events(self, orchestrator: "Orchestrator") -> bool:
#     - Outputs: False if the user has quit, True otherwise.
#     - Side Effects: Forwards mouse input to the orchestrator.
#   - draw(self, frame: "FrameData") -> None:
#     - Side Effects: Renders particles and HUD, flips the display and
#       waits for the next frame slot.

def project_points(positions: np.ndarray, camera: Tuple[float, float, float],
                   fov_degrees: float, width: int, height: int,
                   near: float = CAMERA_NEAR, far: float = CAMERA_FAR):
    """Perspective projection for a camera looking down the -z axis."""
    rel = positions - np.asarray(camera, dtype=np.float64)
    depth = -rel[:, 2]
    focal = 1.0 / np.tan(np.radians(fov_degrees) / 2.0)
    aspect = width / height

    in_range = (depth > near) & (depth < far)
    safe_depth = np.where(in_range, depth, 1.0)
    ndc_x = rel[:, 0] * focal / aspect / safe_depth
    ndc_y = rel[:, 1] * focal / safe_depth

    xs = ((ndc_x + 1.0) * 0.5 * width).astype(np.int64)
    ys = ((1.0 - ndc_y) * 0.5 * height).astype(np.int64)
    visible = in_range & (xs >= 0) & (xs < width) & (ys >= 0) & (ys < height)
    return xs, ys, depth, visible

def _to_rgb255(color: Tuple[float, float, float]) -> Tuple[int, int, int]:
    return tuple(int(round(c * 255)) for c in color)

def _glow(accum: np.ndarray, factor: int = 4) -> np.ndarray:
    """Cheap blur: block-average down by factor, then repeat back up."""
    w, h, _ = accum.shape
    cw, ch = w - w % factor, h - h % factor
    small = accum[:cw, :ch].reshape(cw // factor, factor, ch // factor, factor, 3).mean(axis=(1, 3))
    glow = np.zeros_like(accum)
    glow[:cw, :ch] = np.repeat(np.repeat(small, factor, axis=0), factor, axis=1)
    return glow


class Visualizer:
    """
    Renders the particle buffers and HUD, and translates mouse input.
    """
    def __init__(self, params: Optional[Dict[str, Any]] = None,
                 theme: Optional[Dict[str, Any]] = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Initializes Pygame and the display window.

        Args:
            params: The "visualization" config section.
            theme: One of constants.THEMES; sets the idle glow and HUD tints.
        """
        params = params or {}
        self.theme = theme or THEMES[DEFAULT_THEME]
        pygame.init()
        pygame.font.init()

        if params.get('fullscreen', FULLSCREEN):
            display_info = pygame.display.Info()
            width, height = display_info.current_w, display_info.current_h
            self.screen = pygame.display.set_mode((width, height), pygame.FULLSCREEN)
        else:
            width, height = params.get('width', 1280), params.get('height', 720)
            self.screen = pygame.display.set_mode((width, height))

        self.width = width
        self.height = height
        self.fps = params.get('fps', FPS)
        self.camera = (
            CAMERA_POSITION[0],
            params.get('camera_height', CAMERA_POSITION[1]),
            params.get('camera_distance', CAMERA_POSITION[2]),
        )
        self.fov = params.get('field_of_view', CAMERA_FOV_DEGREES)
        self.rng = rng if rng is not None else np.random.default_rng()

        # Fading the previous frame with this surface leaves particle trails.
        self.blur_surface = pygame.Surface((width, height), pygame.SRCALPHA)
        self.blur_surface.fill((*BACKGROUND_COLOR, MOTION_BLUR_ALPHA))
        self.sim_surface = pygame.Surface((width, height))
        self.sim_surface.fill(BACKGROUND_COLOR)

        pygame.display.set_caption("Genesis Engine")
        self.clock = pygame.time.Clock()

        try:
            self.font_main = pygame.font.SysFont("Segoe UI", 14)
            self.font_status = pygame.font.SysFont("Segoe UI", 20, bold=True)
        except pygame.error:
            logging.warning("Segoe UI font not found, falling back to default sans-serif.")
            self.font_main = pygame.font.SysFont(None, 18)
            self.font_status = pygame.font.SysFont(None, 26, bold=True)

        self._last_state_name = "VOID"
        self.bloom_strength, self.bloom_radius = self._bloom_for("VOID")

        logging.info(f"Visualizer initialized with Pygame display ({width}x{height}).")

    def _bloom_for(self, state_name: str) -> Tuple[float, float]:
        # The idle glow belongs to the theme; the dramatic states override it.
        strength, radius = BLOOM_BY_STATE[state_name]
        if state_name == "VOID":
            strength = self.theme['bloom_strength']
        return strength, radius

    def handle_events(self, orchestrator: "Orchestrator") -> bool:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False

            if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                logging.info("ESC key pressed. Shutting down visualizer.")
                return False

            if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                orchestrator.on_press()
            elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
                orchestrator.on_release()
            elif event.type == pygame.MOUSEMOTION:
                mx, my = event.pos
                orchestrator.on_pointer_move(
                    (mx / self.width) * 2 - 1,
                    -(my / self.height) * 2 + 1,
                )
        return True

    def _render_particles(self, frame: "FrameData") -> np.ndarray:
        camera = self.camera
        shake = CAMERA_SHAKE.get(frame.state.name, 0.0)
        if shake:
            jx, jy = (self.rng.random(2) - 0.5) * shake
            camera = (camera[0] + jx, camera[1] + jy, camera[2])

        xs, ys, depth, visible = project_points(
            frame.positions, camera, self.fov, self.width, self.height
        )
        # Nearer and larger particles contribute more light.
        weight = frame.sizes[visible] * POINT_SCALE / depth[visible] * (0.4 + frame.intensity)
        accum = np.zeros((self.width, self.height, 3), dtype=np.float32)
        light = (frame.colors[visible] * weight[:, np.newaxis]).astype(np.float32)
        np.add.at(accum, (xs[visible], ys[visible]), light)

        accum += _glow(accum) * (self.bloom_strength * self.bloom_radius)
        # Soft tone map keeps dense cores from clipping to flat white.
        return (255.0 * (1.0 - np.exp(-accum))).astype(np.uint8)

    def _draw_hud(self, frame: "FrameData") -> None:
        fps = self.clock.get_fps()
        fps_color = (255, 80, 80) if fps < 30 else (255, 210, 80) if fps < 50 else HUD_VALUE_COLOR
        lines = [
            ("FPS", f"{fps:.0f}", fps_color),
            ("STATE", frame.state.name, HUD_VALUE_COLOR),
            ("PARTICLES", f"{frame.positions.shape[0]:,}", HUD_VALUE_COLOR),
        ]
        y = 12
        for key, value, color in lines:
            self.screen.blit(self.font_main.render(key, True, HUD_TEXT_COLOR), (12, y))
            self.screen.blit(self.font_main.render(value, True, color), (100, y))
            y += self.font_main.get_linesize() + 2

        # Intensity bar
        bar = pygame.Rect(12, y + 4, 160, 6)
        pygame.draw.rect(self.screen, (60, 60, 60), bar, border_radius=3)
        fill = bar.copy()
        fill.width = int(bar.width * min(frame.intensity, 1.0))
        if frame.intensity > 0.8:
            fill_color = (255, 60, 60)
        elif frame.intensity > 0.5:
            fill_color = (255, 160, 40)
        else:
            fill_color = _to_rgb255(self.theme['edge_color'])
        if fill.width > 0:
            pygame.draw.rect(self.screen, fill_color, fill, border_radius=3)

        status_color = _to_rgb255(self.theme['core_color'])
        status = self.font_status.render(STATUS_MESSAGES[frame.state.name], True, status_color)
        self.screen.blit(status, status.get_rect(midbottom=(self.width // 2, self.height - 24)))

    def draw(self, frame: "FrameData") -> None:
        if frame.state.name != self._last_state_name:
            self.bloom_strength, self.bloom_radius = self._bloom_for(frame.state.name)
            self._last_state_name = frame.state.name
            logging.debug(f"Glow set to strength {self.bloom_strength}, radius {self.bloom_radius}.")

        pixels = self._render_particles(frame)

        self.sim_surface.blit(self.blur_surface, (0, 0))
        particle_surface = pygame.surfarray.make_surface(pixels)
        self.sim_surface.blit(particle_surface, (0, 0), special_flags=pygame.BLEND_ADD)

        self.screen.blit(self.sim_surface, (0, 0))
        self._draw_hud(frame)

        pygame.display.flip()
        self.clock.tick(self.fps)

    def close(self):
        """Shuts down Pygame."""
        pygame.font.quit()
        pygame.quit()

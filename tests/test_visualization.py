import numpy as np
import pytest

pytest.importorskip("pygame")

from visualization import project_points, _glow, _to_rgb255  # noqa: E402


def _project(points):
    return project_points(np.array(points, dtype=np.float64), (0.0, 0.0, 10.0), 90.0, 100, 100)

def test_origin_projects_to_center():
    xs, ys, depth, visible = _project([[0.0, 0.0, 0.0]])
    assert (xs[0], ys[0]) == (50, 50)
    assert depth[0] == pytest.approx(10.0)
    assert visible[0]

def test_axes_follow_screen_convention():
    xs, ys, _, visible = _project([[4.5, 0.0, 0.0], [0.0, 4.5, 0.0]])
    # +x goes right, +y goes up (smaller row index).
    assert xs[0] == 72
    assert ys[1] == 27
    assert visible.all()

def test_points_behind_camera_or_off_screen_are_hidden():
    _, _, _, visible = _project([[0.0, 0.0, 20.0], [20.0, 0.0, 0.0], [0.0, 0.0, -5.0]])
    assert visible.tolist() == [False, False, True]

def test_glow_keeps_shape_and_spreads_light():
    accum = np.zeros((10, 9, 3), dtype=np.float32)
    accum[1, 1] = 16.0
    glow = _glow(accum)
    assert glow.shape == accum.shape
    assert glow[0, 0, 0] == pytest.approx(1.0)
    assert glow[3, 3, 0] == pytest.approx(1.0)
    assert glow[4, 4, 0] == 0.0
    # Trailing rows that do not fill a whole block stay dark.
    assert not glow[8:].any()

def test_theme_colors_convert_to_pixels():
    assert _to_rgb255((1.0, 0.5, 0.0)) == (255, 128, 0)

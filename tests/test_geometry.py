import pytest

from carteirinhas.errors import ResourceLoadError
from carteirinhas.geometry import MAX_ZOOM, MIN_ZOOM, Viewport


@pytest.mark.parametrize("zoom", [0.5, 1.0, 1.7, 3.0])
@pytest.mark.parametrize("pan", [(0, 0), (-120.5, 33.25), (400, -900)])
@pytest.mark.parametrize("scale", [(1, 1), (0.5, 0.75), (2.5, 1.333333)])
def test_round_trip(zoom, pan, scale):
    vp = Viewport(zoom=zoom, pan_x=pan[0], pan_y=pan[1], scale_x=scale[0], scale_y=scale[1])
    for point in [(0, 0), (100, 100), (799.5, 0.25), (12.345, 678.9)]:
        back = vp.to_template(*vp.to_screen(*point))
        assert back == pytest.approx(point, rel=1e-6, abs=1e-9)


def test_forward_mapping():
    vp = Viewport(zoom=2, pan_x=10, pan_y=-5, scale_x=0.5, scale_y=1)
    assert vp.to_screen(100, 100) == (110, 195)
    assert vp.rect_to_screen(100, 100, 40, 20) == (110, 195, 40, 40)
    assert vp.to_template(110, 195) == (100, 100)


def test_zoom_is_clamped():
    vp = Viewport()
    assert vp.set_zoom(10) == MAX_ZOOM
    assert vp.set_zoom(0.01) == MIN_ZOOM
    vp.set_zoom(1)
    for _ in range(5):
        vp.zoom_by(0.1)
    assert vp.zoom == pytest.approx(1.5)


def test_reset_keeps_image_scale():
    vp = Viewport(zoom=2, pan_x=5, pan_y=5, scale_x=0.5, scale_y=0.5)
    vp.reset()
    assert (vp.zoom, vp.pan_x, vp.pan_y) == (1.0, 0.0, 0.0)
    assert vp.scale_x == 0.5


def test_image_scale():
    vp = Viewport()
    vp.update_image_scale(800, 600, 1600, 300)
    assert (vp.scale_x, vp.scale_y) == (0.5, 2.0)
    with pytest.raises(ResourceLoadError):
        vp.update_image_scale(800, 600, 0, 300)

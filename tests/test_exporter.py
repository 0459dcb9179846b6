import asyncio

import pytest
from PIL import Image

from carteirinhas.errors import MissingBackImageError
from carteirinhas.exporter import export_both_sides, export_filename, export_side

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_export_filename():
    assert export_filename("Carteira OAB", "front", when=123) == "documento-Carteira_OAB-front-123.png"
    assert export_filename("", "back", when=1).startswith("documento-file-back-")


def test_export_side_returns_png(scenario_template):
    out = asyncio.run(export_side(scenario_template, "front", {"field-1": "Ana"}))
    assert out.side == "front"
    assert out.content.startswith(PNG_SIGNATURE)
    assert out.filename.startswith("documento-Carteira_OAB-front-")
    assert out.filename.endswith(".png")


def test_export_back_without_image_does_not_render(scenario_template):
    calls = []

    def load(source):
        calls.append(source)
        return Image.new("RGB", (10, 10))

    tpl = scenario_template.model_copy(update={"back_image_url": None})
    with pytest.raises(MissingBackImageError):
        asyncio.run(export_side(tpl, "back", {}, load=load))
    with pytest.raises(MissingBackImageError):
        asyncio.run(export_both_sides(tpl, {}, load=load))
    assert calls == []


def test_export_both_sides_front_then_back(scenario_template, tmp_path):
    files = asyncio.run(export_both_sides(scenario_template, {"field-1": "Ana"}))
    assert [f.side for f in files] == ["front", "back"]
    for f in files:
        path = f.save(tmp_path)
        with Image.open(path) as img:
            assert img.size == (800, 600)

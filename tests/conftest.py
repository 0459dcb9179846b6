import os
import tempfile

# antes de importar el paquete: datos en un directorio temporal y sin descargas
os.environ["CARTEIRINHAS_DATA_DIR"] = tempfile.mkdtemp(prefix="carteirinhas-test-")
os.environ["CARTEIRINHAS_FONT_URL"] = ""

from io import BytesIO

import pytest
from PIL import Image

from carteirinhas.models import Template, TemplateField


def png_bytes(size=(400, 250), color=(255, 255, 255), fmt="PNG") -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def background_path(tmp_path):
    p = tmp_path / "front.png"
    p.write_bytes(png_bytes())
    return str(p)


@pytest.fixture
def scenario_template(background_path):
    """Plantilla 800x600 con un texto en la frente y la foto bloqueada en el verso"""
    return Template(
        id="tpl-1",
        name="Carteira OAB",
        front_image_url=background_path,
        back_image_url=background_path,
        width=800,
        height=600,
        fields=[
            TemplateField(id="field-1", name="Nome", type="text", side="front",
                          x=100, y=100, width=200, height=30, required=True),
            TemplateField(id="field-2", name="Foto", type="photo", side="back",
                          x=200, y=200, width=150, height=150, locked=True),
        ],
    )

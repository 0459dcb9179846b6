from __future__ import annotations
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import List, Optional

from .errors import MissingBackImageError
from .models import Side, Template
from .renderer import Loader, Values, load_image, render_side_async
from .utils import now_ms, safe_filename

logger = logging.getLogger(__name__)

@dataclass
class ExportedImage:
    filename: str
    side: Side
    content: bytes

    def save(self, directory: Path) -> Path:
        path = directory / self.filename
        path.write_bytes(self.content)
        return path

def export_filename(template_name: str, side: Side, when: Optional[int] = None) -> str:
    ts = now_ms() if when is None else when
    return f"documento-{safe_filename(template_name)}-{side}-{ts}.png"

async def export_side(
    template: Template,
    side: Side,
    values: Optional[Values],
    load: Loader = load_image,
) -> ExportedImage:
    """Renderiza un lado y lo serializa a PNG"""
    if side == "back" and not template.back_image_url:
        raise MissingBackImageError()

    img = await render_side_async(template, side, values, load=load)
    buf = BytesIO()
    img.save(buf, format="PNG")
    out = ExportedImage(filename=export_filename(template.name, side), side=side, content=buf.getvalue())
    logger.info(f"Exported {side} of template {template.id}: {out.filename} ({len(out.content)} bytes)")
    return out

async def export_both_sides(
    template: Template,
    values: Optional[Values],
    load: Loader = load_image,
) -> List[ExportedImage]:
    """Frente y después verso; son dos ficheros independientes"""
    if not template.back_image_url:
        raise MissingBackImageError()
    front = await export_side(template, "front", values, load=load)
    back = await export_side(template, "back", values, load=load)
    return [front, back]

from __future__ import annotations
from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import asyncio
import base64
import binascii
import hashlib
import logging
from functools import lru_cache
from io import BytesIO
from pathlib import Path

import requests

from . import settings
from .errors import InputValidationError, MissingBackImageError, ResourceLoadError
from .models import GeneratedValue, Side, Template, TemplateField, values_by_field

logger = logging.getLogger(__name__)

Value = Union[str, bytes]
Values = Union[Mapping[str, Value], Sequence[GeneratedValue]]
Loader = Callable[[str], Image.Image]

PLACEHOLDER_STROKE = (102, 102, 102)
PLACEHOLDER_TEXT = (153, 153, 153)
PLACEHOLDER_FONT_SIZE = 14
PLACEHOLDER_LABEL = "Photo"
DASH = 5

# colores del overlay del editor (RGBA)
OVERLAY_TEXT = (59, 130, 246)
OVERLAY_PHOTO = (168, 85, 247)
OVERLAY_SELECTED = (250, 204, 21)
OVERLAY_DRAFT = (96, 165, 250)

IMAGE_EXTS = ('.png', '.jpg', '.jpeg', '.webp', '.bmp', '.gif')

# ---------- fuentes ----------

def _get_cached_font(url: str, size: int) -> Optional[ImageFont.FreeTypeFont]:
    """Descarga y cachea la fuente de respaldo"""
    font_hash = hashlib.md5(url.encode()).hexdigest()
    cache_path = settings.FONT_CACHE_DIR / f"{font_hash}.ttf"

    if not cache_path.exists():
        try:
            response = requests.get(url, timeout=10)
            response.raise_for_status()
            settings.FONT_CACHE_DIR.mkdir(parents=True, exist_ok=True)
            cache_path.write_bytes(response.content)
            logger.info(f"Font downloaded: {url}")
        except requests.RequestException as e:
            logger.warning(f"Font download failed: {e}")
            return None

    try:
        return ImageFont.truetype(str(cache_path), size=size)
    except OSError as e:
        logger.warning(f"Font load failed {cache_path}: {e}")
        return None

@lru_cache(maxsize=64)
def _load_font(family: str, size: int) -> Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]:
    # fuente del sistema por nombre (Arial, DejaVuSans, ...)
    for candidate in (family, f"{family}.ttf"):
        try:
            return ImageFont.truetype(candidate, size=size)
        except OSError:
            pass

    if settings.FONT_URL:
        font = _get_cached_font(settings.FONT_URL, size)
        if font:
            return font

    return ImageFont.load_default(size=size)

def _color(value: str) -> Tuple[int, ...]:
    try:
        # la superficie es RGB: #rrggbbaa pierde el canal alfa
        return ImageColor.getcolor(value, "RGB")
    except ValueError:
        return (0, 0, 0)

# ---------- carga de imágenes ----------

def decode_image(data: bytes) -> Image.Image:
    """Decodifica un payload binario (foto subida) a píxeles"""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ResourceLoadError("Could not decode image") from e
    return img

def _open_path(path: Path) -> Image.Image:
    if not path.is_file():
        raise ResourceLoadError(f"Image not found: {path.name}")
    return decode_image(path.read_bytes())

def _download(url: str) -> Image.Image:
    url_hash = hashlib.md5(url.encode()).hexdigest()[:12]
    suffix = Path(url.split("?", 1)[0]).suffix.lower()
    ext = suffix if suffix in IMAGE_EXTS else ".jpg"
    cache_path = settings.IMAGE_CACHE_DIR / f"cached-{url_hash}{ext}"

    if cache_path.exists():
        logger.debug(f"Using cached image: {cache_path.name}")
        return _open_path(cache_path)

    try:
        response = requests.get(url, timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Image download failed {url}: {e}")
        raise ResourceLoadError("Could not load template image") from e

    img = decode_image(response.content)
    settings.IMAGE_CACHE_DIR.mkdir(parents=True, exist_ok=True)
    cache_path.write_bytes(response.content)
    logger.info(f"Image downloaded and cached: {cache_path.name}")
    return img

def load_image(source: str) -> Image.Image:
    """
    Carga una imagen desde:
      - data URL (data:image/png;base64,...)
      - URL http(s), cacheada en disco
      - URL pública de medios (/media/...)
      - ruta local
    """
    if source.startswith("data:image"):
        try:
            _, encoded = source.split(",", 1)
            return decode_image(base64.b64decode(encoded))
        except (ValueError, binascii.Error) as e:
            raise ResourceLoadError("Invalid data URL") from e
    if source.startswith(("http://", "https://")):
        return _download(source)
    prefix = settings.MEDIA_URL.rstrip("/") + "/"
    if source.startswith(prefix):
        rel = source[len(prefix):]
        path = (settings.MEDIA_DIR / rel).resolve()
        if settings.MEDIA_DIR.resolve() not in path.parents:
            raise ResourceLoadError("Invalid media path")
        return _open_path(path)
    return _open_path(Path(source))

# ---------- dibujo ----------

def _as_mapping(values: Optional[Values]) -> Dict[str, Value]:
    if values is None:
        return {}
    if isinstance(values, Mapping):
        return dict(values)
    return values_by_field(list(values))

def resolve_text(field: TemplateField, values: Mapping[str, Value]) -> str:
    """Valor del operador o, si falta, el nombre del campo como marcador"""
    v = values.get(field.id)
    if isinstance(v, str) and v.strip():
        return v
    return field.name

def _box(field: TemplateField) -> Tuple[int, int, int, int]:
    x, y = int(round(field.x)), int(round(field.y))
    return x, y, max(1, int(round(field.width))), max(1, int(round(field.height)))

def _draw_text(draw: ImageDraw.ImageDraw, field: TemplateField, text: str) -> None:
    # Convención única: texto centrado verticalmente en la caja del campo
    font = _load_font(field.font_family, field.font_size)
    l, t, r, b = draw.textbbox((0, 0), text, font=font)
    tw, th = r - l, b - t

    if field.align == "center":
        tx = field.x + (field.width - tw) / 2
    elif field.align == "right":
        tx = field.x + field.width - tw
    else:
        tx = field.x
    ty = field.y + (field.height - th) / 2

    draw.text((tx - l, ty - t), text, font=font, fill=_color(field.color))

def _dashed_line(draw: ImageDraw.ImageDraw, p0: Tuple[int, int], p1: Tuple[int, int], fill) -> None:
    (x0, y0), (x1, y1) = p0, p1
    length = max(abs(x1 - x0), abs(y1 - y0))
    horizontal = y0 == y1
    for start in range(0, length + 1, DASH * 2):
        end = min(start + DASH - 1, length)
        if horizontal:
            draw.line([(x0 + start, y0), (x0 + end, y0)], fill=fill)
        else:
            draw.line([(x0, y0 + start), (x0, y0 + end)], fill=fill)

def _dashed_rect(draw: ImageDraw.ImageDraw, box: Tuple[int, int, int, int], fill) -> None:
    x, y, w, h = box
    x2, y2 = x + w - 1, y + h - 1
    _dashed_line(draw, (x, y), (x2, y), fill)
    _dashed_line(draw, (x, y2), (x2, y2), fill)
    _dashed_line(draw, (x, y), (x, y2), fill)
    _dashed_line(draw, (x2, y), (x2, y2), fill)

def _draw_photo_placeholder(draw: ImageDraw.ImageDraw, field: TemplateField) -> None:
    box = _box(field)
    _dashed_rect(draw, box, PLACEHOLDER_STROKE)
    font = _load_font("Arial", PLACEHOLDER_FONT_SIZE)
    l, t, r, b = draw.textbbox((0, 0), PLACEHOLDER_LABEL, font=font)
    cx = field.x + field.width / 2
    cy = field.y + field.height / 2
    draw.text((cx - (r - l) / 2 - l, cy - (b - t) / 2 - t), PLACEHOLDER_LABEL, font=font, fill=PLACEHOLDER_TEXT)

def _paste_photo(surface: Image.Image, photo: Image.Image, field: TemplateField) -> None:
    # la caja del campo manda: no se conserva la proporción
    x, y, w, h = _box(field)
    im = photo.convert("RGBA").resize((w, h), Image.Resampling.LANCZOS)
    surface.paste(im, (x, y), im)

def _new_surface(template: Template, background: Image.Image) -> Image.Image:
    W, H = template.width, template.height
    surface = Image.new("RGB", (W, H), (255, 255, 255))
    # el fondo siempre se estira al tamaño declarado, nunca al nativo
    bg = background.convert("RGBA").resize((W, H), Image.Resampling.LANCZOS)
    surface.paste(bg, (0, 0), bg)
    return surface

def render_side(
    template: Template,
    side: Side,
    values: Optional[Values],
    background: Image.Image,
    photos: Optional[Mapping[str, Image.Image]] = None,
) -> Image.Image:
    """
    Compone un lado de la plantilla rellenada sobre una superficie nueva.
    Función pura: no guarda estado entre llamadas.
    """
    vals = _as_mapping(values)
    photos = photos or {}
    surface = _new_surface(template, background)
    draw = ImageDraw.Draw(surface)

    for field in template.side_fields(side):
        if field.type == "text":
            _draw_text(draw, field, resolve_text(field, vals))
        elif field.id in photos:
            _paste_photo(surface, photos[field.id], field)
        else:
            _draw_photo_placeholder(draw, field)

    return surface

async def render_side_async(
    template: Template,
    side: Side,
    values: Optional[Values],
    load: Loader = load_image,
) -> Image.Image:
    """
    Espera la decodificación de fondo y fotos (en hilos) y después dibuja
    todo en orden de campos. Trabaja sobre una copia de la plantilla tomada
    al inicio, así que ediciones posteriores no se mezclan en este pase.
    """
    snapshot = template.model_copy(deep=True)
    if snapshot.width <= 0 or snapshot.height <= 0:
        raise InputValidationError("Template dimensions must be greater than 0")
    source = snapshot.image_for(side)
    if not source:
        if side == "back":
            raise MissingBackImageError()
        raise ResourceLoadError("Template has no front image")

    vals = _as_mapping(values)
    background = await asyncio.to_thread(load, source)

    photos: Dict[str, Image.Image] = {}
    for field in snapshot.side_fields(side):
        payload = vals.get(field.id)
        if field.type == "photo" and isinstance(payload, bytes) and payload:
            photos[field.id] = await asyncio.to_thread(decode_image, payload)

    return render_side(snapshot, side, vals, background, photos)

class PreviewRenderer:
    """
    Vista previa en vivo. Cada llamada recibe un número de generación;
    si otra llamada empezó mientras esta esperaba a decodificar imágenes,
    el resultado viejo se descarta (devuelve None).
    """
    def __init__(self, load: Loader = load_image):
        self._load = load
        self.generation = 0

    async def render(self, template: Template, side: Side, values: Optional[Values]) -> Optional[Image.Image]:
        self.generation += 1
        gen = self.generation
        try:
            img = await render_side_async(template, side, values, load=self._load)
        except ResourceLoadError:
            if gen != self.generation:
                return None
            raise
        if gen != self.generation:
            logger.debug(f"Preview generation {gen} superseded by {self.generation}")
            return None
        return img

def render_editor_overlay(
    template: Template,
    fields: List[TemplateField],
    background: Image.Image,
    selected_id: Optional[str] = None,
) -> Image.Image:
    """Fondo + cajas de los campos con su etiqueta, en espacio de plantilla"""
    base = _new_surface(template, background).convert("RGBA")
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = _load_font("Arial", 12)

    for f in fields:
        if f.provisional:
            color = OVERLAY_DRAFT
        elif f.id == selected_id:
            color = OVERLAY_SELECTED
        else:
            color = OVERLAY_PHOTO if f.type == "photo" else OVERLAY_TEXT

        # el borrador puede tener ancho/alto negativos mientras se arrastra
        x0, x1 = sorted((f.x, f.x + f.width))
        y0, y1 = sorted((f.y, f.y + f.height))
        draw.rectangle([x0, y0, x1, y1], outline=color + (255,), fill=color + (51,), width=2)

        if f.name and not f.provisional:
            l, t, r, b = draw.textbbox((0, 0), f.name, font=font)
            draw.rectangle([x0, y0, x0 + (r - l) + 6, y0 + (b - t) + 4], fill=(0, 0, 0, 128))
            draw.text((x0 + 3 - l, y0 + 2 - t), f.name, font=font, fill=(255, 255, 255, 255))

    return Image.alpha_composite(base, layer).convert("RGB")

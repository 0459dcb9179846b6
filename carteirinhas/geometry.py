"""
Conversión entre coordenadas de pantalla y coordenadas nativas de la plantilla.

    pantalla = plantilla * escala_imagen * zoom + pan
    plantilla = (pantalla - pan) / zoom / escala_imagen

La escala de imagen reconcilia el tamaño real de la imagen subida con el
lienzo declarado por la plantilla; se recalcula cada vez que carga un fondo.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

from .errors import ResourceLoadError

MIN_ZOOM = 0.5
MAX_ZOOM = 3.0
WHEEL_STEP = 0.1
BUTTON_STEP = 0.2

@dataclass
class Viewport:
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0

    def to_screen(self, x: float, y: float) -> Tuple[float, float]:
        return (
            x * self.scale_x * self.zoom + self.pan_x,
            y * self.scale_y * self.zoom + self.pan_y,
        )

    def to_template(self, sx: float, sy: float) -> Tuple[float, float]:
        return (
            (sx - self.pan_x) / self.zoom / self.scale_x,
            (sy - self.pan_y) / self.zoom / self.scale_y,
        )

    def length_to_template(self, dx: float, dy: float) -> Tuple[float, float]:
        """Desplazamiento en pantalla -> desplazamiento en plantilla (sin pan)"""
        return dx / self.zoom / self.scale_x, dy / self.zoom / self.scale_y

    def rect_to_screen(self, x: float, y: float, w: float, h: float) -> Tuple[float, float, float, float]:
        sx, sy = self.to_screen(x, y)
        return sx, sy, w * self.scale_x * self.zoom, h * self.scale_y * self.zoom

    def set_zoom(self, z: float) -> float:
        self.zoom = min(MAX_ZOOM, max(MIN_ZOOM, z))
        return self.zoom

    def zoom_by(self, delta: float) -> float:
        # redondeo para que 10 pasos de 0.1 no acumulen error
        return self.set_zoom(round(self.zoom + delta, 6))

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def reset(self) -> None:
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0

    def update_image_scale(self, template_w: float, template_h: float, natural_w: float, natural_h: float) -> None:
        if natural_w <= 0 or natural_h <= 0:
            raise ResourceLoadError("Background image has no size")
        self.scale_x = template_w / natural_w
        self.scale_y = template_h / natural_h

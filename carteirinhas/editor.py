"""
Editor interactivo de plantillas.

Traduce gestos de puntero (en coordenadas de pantalla) en altas, movimientos,
redimensionados y bajas de campos. La plantilla nunca se modifica in situ:
cada cambio produce una Template nueva con el campo sustituido en su posición.
"""
from __future__ import annotations
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .errors import FieldRuleError, InputValidationError
from .geometry import BUTTON_STEP, WHEEL_STEP, Viewport
from .models import EditorEvent, EditorMode, FieldType, Side, Template, TemplateField

logger = logging.getLogger(__name__)

MIN_DRAW_SIZE = 20      # por debajo, el rectángulo dibujado se descarta
MIN_FIELD_WIDTH = 50    # mínimos al redimensionar
MIN_FIELD_HEIGHT = 30
HANDLE_TOLERANCE = 8    # px de pantalla alrededor de cada borde

GEOMETRY_ATTRS = {"x", "y", "width", "height"}
EDITABLE_ATTRS = GEOMETRY_ATTRS | {"name", "required", "font_size", "font_family", "color", "align"}

def _clamp(v: float, lo: float, hi: float) -> float:
    return min(max(v, lo), max(lo, hi))

class TemplateEditor:
    def __init__(self, template: Template, side: Side = "front", mode: EditorMode = "draw"):
        self.template = template
        self.side: Side = side
        self.mode: EditorMode = mode
        self.field_type: FieldType = "text"
        self.viewport = Viewport()
        self.selected_id: Optional[str] = None
        self.draft: Optional[TemplateField] = None

        self._gesture: Optional[str] = None  # draw | pan | move | resize
        self._start: Tuple[float, float] = (0.0, 0.0)
        self._pan_origin: Tuple[float, float] = (0.0, 0.0)
        self._origin: Optional[TemplateField] = None
        self._edge: Optional[str] = None

    # ---------- consultas ----------

    def fields(self) -> List[TemplateField]:
        return self.template.side_fields(self.side)

    def visible_fields(self) -> List[TemplateField]:
        """Campos del lado activo más el borrador, que se pinta por el mismo camino"""
        out = self.fields()
        if self.draft is not None:
            out.append(self.draft)
        return out

    @property
    def selected(self) -> Optional[TemplateField]:
        return self.template.find(self.selected_id) if self.selected_id else None

    def state(self) -> Dict[str, Any]:
        return {
            "template": self.template.model_dump(),
            "side": self.side,
            "mode": self.mode,
            "field_type": self.field_type,
            "selected_id": self.selected_id,
            "draft": self.draft.model_dump() | {"provisional": True} if self.draft else None,
            "viewport": asdict(self.viewport),
        }

    # ---------- controles ----------

    def set_mode(self, mode: str) -> None:
        if mode not in ("draw", "move"):
            raise InputValidationError(f"Unknown editor mode: {mode}")
        self._cancel_gesture()
        self.mode = mode  # type: ignore[assignment]

    def set_field_type(self, field_type: str) -> None:
        if field_type not in ("text", "photo"):
            raise InputValidationError(f"Unknown field type: {field_type}")
        self.field_type = field_type  # type: ignore[assignment]

    def set_side(self, side: str) -> None:
        if side not in ("front", "back"):
            raise InputValidationError(f"Unknown side: {side}")
        if side == "back" and not self.template.back_image_url:
            raise InputValidationError("Template has no back image")
        self._cancel_gesture()
        self.selected_id = None
        self.side = side  # type: ignore[assignment]

    def select(self, field_id: Optional[str]) -> None:
        if field_id is not None:
            f = self.template.find(field_id)
            if f is None or f.side != self.side:
                raise InputValidationError(f"Field not found on this side: {field_id}")
        self.selected_id = field_id

    def load_background(self, natural_w: int, natural_h: int) -> None:
        self.viewport.update_image_scale(self.template.width, self.template.height, natural_w, natural_h)

    def replace_template(self, template: Template) -> None:
        self._cancel_gesture()
        self.template = template
        if self.selected_id and template.find(self.selected_id) is None:
            self.selected_id = None

    def wheel(self, delta: float) -> float:
        return self.viewport.zoom_by(-WHEEL_STEP if delta > 0 else WHEEL_STEP)

    def zoom_in(self) -> float:
        return self.viewport.zoom_by(BUTTON_STEP)

    def zoom_out(self) -> float:
        return self.viewport.zoom_by(-BUTTON_STEP)

    def reset_view(self) -> None:
        self.viewport.reset()

    # ---------- puntero ----------

    def pointer_down(self, sx: float, sy: float, name: Optional[str] = None, alt: bool = False) -> None:
        if alt:
            self._begin_pan(sx, sy)
            return

        if self.mode == "draw":
            self._begin_draw(sx, sy, name)
            return

        sel = self.selected
        if sel is not None and sel.side == self.side and not sel.locked:
            edge = self._edge_at(sel, sx, sy)
            if edge:
                self._gesture = "resize"
                self._edge = edge
                self._origin = sel
                self._start = (sx, sy)
                return

        tx, ty = self.viewport.to_template(sx, sy)
        locked_hit = None
        for f in self.fields():
            if not f.contains(tx, ty):
                continue
            if f.locked:
                locked_hit = locked_hit or f
                continue
            self.selected_id = f.id
            self._gesture = "move"
            self._origin = f
            self._start = (sx, sy)
            return

        if locked_hit is not None:
            # bloqueado: se puede ver seleccionado pero no arrastrar
            self.selected_id = locked_hit.id
            return

        self.selected_id = None
        self._begin_pan(sx, sy)

    def pointer_move(self, sx: float, sy: float) -> None:
        g = self._gesture
        if g is None:
            return
        if g == "pan":
            self.viewport.pan_x = self._pan_origin[0] + (sx - self._start[0])
            self.viewport.pan_y = self._pan_origin[1] + (sy - self._start[1])
        elif g == "draw":
            tx, ty = self.viewport.to_template(sx, sy)
            self.draft = self.draft.model_copy(update={"width": tx - self.draft.x, "height": ty - self.draft.y})
        elif g == "move":
            o = self._origin
            dx, dy = self.viewport.length_to_template(sx - self._start[0], sy - self._start[1])
            self._replace(o.id,
                          x=_clamp(o.x + dx, 0, self.template.width - o.width),
                          y=_clamp(o.y + dy, 0, self.template.height - o.height))
        elif g == "resize":
            dx, dy = self.viewport.length_to_template(sx - self._start[0], sy - self._start[1])
            self._replace(self._origin.id, **self._resized(dx, dy))

    def pointer_up(self, sx: Optional[float] = None, sy: Optional[float] = None) -> Optional[TemplateField]:
        """Termina el gesto. Devuelve el campo creado si se confirmó un dibujo."""
        if self._gesture == "draw" and sx is not None and sy is not None:
            self.pointer_move(sx, sy)
        g = self._gesture
        draft = self.draft
        self._cancel_gesture()
        if g != "draw" or draft is None:
            return None
        return self._commit(draft)

    def pointer_leave(self) -> None:
        self._cancel_gesture()

    # ---------- mutaciones directas ----------

    def delete_field(self, field_id: str) -> None:
        f = self.template.find(field_id)
        if f is None:
            raise InputValidationError(f"Field not found: {field_id}")
        if f.locked:
            raise FieldRuleError("Locked fields cannot be deleted")
        self._set_fields([x for x in self.template.fields if x.id != field_id])
        if self.selected_id == field_id:
            self.selected_id = None
        logger.debug(f"Field deleted: {field_id}")

    def update_field(self, field_id: str, **attrs: Any) -> TemplateField:
        f = self.template.find(field_id)
        if f is None:
            raise InputValidationError(f"Field not found: {field_id}")
        unknown = set(attrs) - EDITABLE_ATTRS
        if unknown:
            raise InputValidationError(f"Attributes not editable: {', '.join(sorted(unknown))}")
        if f.locked and GEOMETRY_ATTRS & set(attrs):
            raise FieldRuleError("Locked fields cannot be moved or resized")
        if "name" in attrs:
            attrs["name"] = str(attrs["name"]).strip()
            if not attrs["name"]:
                raise InputValidationError("Field name is required")
        try:
            new = TemplateField.model_validate(f.model_dump() | attrs)
        except ValidationError as e:
            raise InputValidationError(f"Invalid field attributes: {e.errors()[0]['msg']}") from e
        if GEOMETRY_ATTRS & set(attrs):
            self._check_geometry(new)
        self._set_fields([new if x.id == field_id else x for x in self.template.fields])
        return new

    def dispatch(self, event: EditorEvent) -> Optional[TemplateField]:
        t = event.type
        if t in ("pointer_down", "pointer_move") and (event.x is None or event.y is None):
            raise InputValidationError(f"Event {t} needs x and y")
        if t == "pointer_down":
            self.pointer_down(event.x, event.y, name=event.name, alt=event.alt)
        elif t == "pointer_move":
            self.pointer_move(event.x, event.y)
        elif t == "pointer_up":
            # sin posición: se confirma el borrador tal cual quedó
            return self.pointer_up(event.x, event.y)
        elif t == "pointer_leave":
            self.pointer_leave()
        elif t == "wheel":
            self.wheel(event.delta)
        elif t == "zoom_in":
            self.zoom_in()
        elif t == "zoom_out":
            self.zoom_out()
        elif t == "reset_view":
            self.reset_view()
        elif t == "set_mode":
            self.set_mode(event.value or "")
        elif t == "set_side":
            self.set_side(event.value or "")
        elif t == "set_field_type":
            self.set_field_type(event.value or "")
        elif t == "select":
            self.select(event.field_id)
        elif t == "delete":
            self.delete_field(event.field_id or self.selected_id or "")
        elif t == "update_field":
            return self.update_field(event.field_id or self.selected_id or "", **event.attrs)
        return None

    # ---------- internos ----------

    def _begin_pan(self, sx: float, sy: float) -> None:
        self._gesture = "pan"
        self._start = (sx, sy)
        self._pan_origin = (self.viewport.pan_x, self.viewport.pan_y)

    def _begin_draw(self, sx: float, sy: float, name: Optional[str]) -> None:
        if not self.template.image_for(self.side):
            raise InputValidationError("Upload a background image before drawing fields")
        label = (name or "").strip()
        if not label:
            raise InputValidationError("Field name is required")
        if len(label) > 80:
            raise InputValidationError("Field name is too long")
        if self.field_type == "photo":
            self._check_photo_allowed()

        tx, ty = self.viewport.to_template(sx, sy)
        self.draft = TemplateField(
            name=label,
            type=self.field_type,
            side=self.side,
            x=tx, y=ty, width=0, height=0,
            locked=self.field_type == "photo",
            provisional=True,
        )
        self._gesture = "draw"

    def _check_photo_allowed(self) -> None:
        photos = [f for f in self.template.fields if f.type == "photo"]
        if self.side == "back" and any(p.side == "back" for p in photos):
            raise FieldRuleError("A photo field already exists on the back side")
        if photos:
            raise FieldRuleError("Template already has a photo field")

    def _check_geometry(self, f: TemplateField) -> None:
        if f.x < 0 or f.y < 0 or f.width <= 0 or f.height <= 0:
            raise FieldRuleError("Field position must be non-negative and its size greater than 0")
        if f.x + f.width > self.template.width or f.y + f.height > self.template.height:
            raise FieldRuleError("Field must stay inside the template bounds")

    def _commit(self, draft: TemplateField) -> Optional[TemplateField]:
        # normaliza signo/origen y recorta al lienzo
        x0 = max(0.0, min(draft.x, draft.x + draft.width))
        y0 = max(0.0, min(draft.y, draft.y + draft.height))
        x1 = min(float(self.template.width), max(draft.x, draft.x + draft.width))
        y1 = min(float(self.template.height), max(draft.y, draft.y + draft.height))
        w, h = x1 - x0, y1 - y0
        if w <= MIN_DRAW_SIZE or h <= MIN_DRAW_SIZE:
            return None

        field = draft.model_copy(update={"x": x0, "y": y0, "width": w, "height": h, "provisional": False})
        self._set_fields(self.template.fields + [field])
        logger.debug(f"Field drawn: {field.id} ({field.type}, {field.side})")
        return field

    def _resized(self, dx: float, dy: float) -> Dict[str, float]:
        # el mínimo se aplica primero; el lienzo manda sobre el mínimo
        o = self._origin
        if self._edge == "left":
            right = o.x + o.width
            w = min(max(MIN_FIELD_WIDTH, o.width - dx), right)
            return {"x": right - w, "width": w}
        if self._edge == "right":
            w = min(max(MIN_FIELD_WIDTH, o.width + dx), self.template.width - o.x)
            return {"width": w}
        if self._edge == "top":
            bottom = o.y + o.height
            h = min(max(MIN_FIELD_HEIGHT, o.height - dy), bottom)
            return {"y": bottom - h, "height": h}
        h = min(max(MIN_FIELD_HEIGHT, o.height + dy), self.template.height - o.y)
        return {"height": h}

    def _edge_at(self, f: TemplateField, sx: float, sy: float) -> Optional[str]:
        x, y, w, h = self.viewport.rect_to_screen(f.x, f.y, f.width, f.height)
        t = HANDLE_TOLERANCE
        if y - t <= sy <= y + h + t:
            if abs(sx - x) <= t:
                return "left"
            if abs(sx - (x + w)) <= t:
                return "right"
        if x - t <= sx <= x + w + t:
            if abs(sy - y) <= t:
                return "top"
            if abs(sy - (y + h)) <= t:
                return "bottom"
        return None

    def _replace(self, field_id: str, **update: Any) -> None:
        self._set_fields([f.model_copy(update=update) if f.id == field_id else f for f in self.template.fields])

    def _set_fields(self, fields: List[TemplateField]) -> None:
        self.template = self.template.model_copy(update={"fields": fields})

    def _cancel_gesture(self) -> None:
        self._gesture = None
        self._origin = None
        self._edge = None
        self.draft = None

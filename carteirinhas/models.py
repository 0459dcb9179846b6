from __future__ import annotations
from pydantic import BaseModel, Field, StrictBytes, StrictStr
from typing import Dict, List, Literal, Optional, Union

from .utils import new_id

FieldType = Literal["text", "photo"]
Side = Literal["front", "back"]
Align = Literal["left", "center", "right"]
EditorMode = Literal["draw", "move"]

class TemplateField(BaseModel):
    """
    Región rectangular de un lado de la plantilla.
    La geometría va en píxeles nativos de la plantilla, no de pantalla.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(default="", max_length=80)
    type: FieldType = "text"
    side: Side = "front"

    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0

    required: bool = False
    locked: bool = False

    # estilo de texto
    font_size: int = Field(default=16, ge=4, le=400)
    font_family: str = "Arial"
    color: str = "#000000"
    align: Align = "left"

    # rectángulo en curso de dibujo en el editor (nunca se persiste)
    provisional: bool = Field(default=False, exclude=True)

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height

class Template(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(default="Novo Template", max_length=120)

    front_image_url: str = ""
    back_image_url: Optional[str] = None

    # lienzo nativo de la plantilla
    width: int = 800
    height: int = 500

    fields: List[TemplateField] = Field(default_factory=list)

    created_at: str = ""
    updated_at: str = ""

    def side_fields(self, side: Side) -> List[TemplateField]:
        return [f for f in self.fields if f.side == side]

    def image_for(self, side: Side) -> Optional[str]:
        return self.front_image_url if side == "front" else self.back_image_url

    def find(self, field_id: str) -> Optional[TemplateField]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

class GeneratedValue(BaseModel):
    """Valor rellenado por el operador: texto, o bytes de imagen para la foto"""
    field_id: str
    value: Union[StrictStr, StrictBytes] = ""

def values_by_field(values: List[GeneratedValue]) -> Dict[str, Union[str, bytes]]:
    return {v.field_id: v.value for v in values}

class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)

class CardRecord(BaseModel):
    """Carteirinha generada (exportación registrada)"""
    id: str
    name: str
    template_id: str
    template_name: str
    data: Dict[str, str] = Field(default_factory=dict)
    front_url: Optional[str] = None
    back_url: Optional[str] = None
    created_at: str

class EditorEvent(BaseModel):
    """Evento de UI serializado que el editor sabe aplicar"""
    type: Literal[
        "pointer_down", "pointer_move", "pointer_up", "pointer_leave",
        "wheel", "zoom_in", "zoom_out", "reset_view",
        "set_mode", "set_side", "set_field_type",
        "select", "delete", "update_field",
    ]
    x: Optional[float] = None
    y: Optional[float] = None
    alt: bool = False
    delta: float = 0
    name: Optional[str] = None
    value: Optional[str] = None
    field_id: Optional[str] = None
    attrs: Dict[str, Union[str, int, float, bool]] = Field(default_factory=dict)

from __future__ import annotations
from typing import List

from .models import Template, ValidationResult

def validate_template(template: Template) -> ValidationResult:
    """
    Comprueba todas las reglas estructurales de una plantilla.
    Devuelve la lista completa de errores, no solo el primero.
    """
    errors: List[str] = []

    if template.width <= 0 or template.height <= 0:
        errors.append("Template dimensions must be greater than 0")

    if not template.front_image_url:
        errors.append("Template must have a front image")

    fields = template.fields
    if not fields:
        errors.append("Template must have at least one field")

    if not any(f.type == "text" for f in fields):
        errors.append("Template must have at least one text field")

    photos = [f for f in fields if f.type == "photo"]
    if len(photos) > 1:
        errors.append("Template must have at most one photo field")

    for photo in photos:
        if photo.side == "back" and not photo.locked:
            errors.append("Photo field on the back side must be locked")
            break

    ids = [f.id for f in fields]
    if len(ids) != len(set(ids)):
        errors.append("Field ids must be unique")

    for f in fields:
        label = f.name or f.id
        if f.x < 0 or f.y < 0 or f.width <= 0 or f.height <= 0:
            errors.append(f'Field "{label}" has invalid coordinates')
        if f.x + f.width > template.width or f.y + f.height > template.height:
            errors.append(f'Field "{label}" is outside the template bounds')

    for f in fields:
        if not f.name.strip():
            errors.append("Field without a name found")

    return ValidationResult(is_valid=not errors, errors=errors)

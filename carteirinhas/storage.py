from __future__ import annotations
import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import InputValidationError, StorageError
from .models import CardRecord, Template
from .utils import now_iso, new_id, ensure_dir

# Campos que nunca llegan desde una actualización parcial
READ_ONLY = {"id", "created_at", "updated_at"}

class JsonStore:
    """
    Persistencia en un único fichero JSON:
    data/templates.json  ->  {"version": 1, "templates": [...], "cards": [...]}
    """
    def __init__(self, path: str):
        self.path = Path(path)
        ensure_dir(self.path.parent)
        self._lock = threading.Lock()
        if not self.path.exists():
            self._write({"version": 1, "templates": [], "cards": []})

    def _read(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read store: {e}") from e

    def _write(self, obj: Dict[str, Any]) -> None:
        tmp = self.path.with_suffix(".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(obj, f, ensure_ascii=False, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise StorageError(f"Could not write store: {e}") from e

    # ---------- plantillas ----------

    def list_templates(self, q: Optional[str] = None) -> List[Template]:
        with self._lock:
            db = self._read()
            templates = [Template.model_validate(t) for t in db.get("templates", [])]

        if q:
            qq = q.lower().strip()
            templates = [t for t in templates if qq in t.name.lower()]

        # más recientes primero
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    def get(self, template_id: str) -> Optional[Template]:
        with self._lock:
            db = self._read()
            for t in db.get("templates", []):
                if t.get("id") == template_id:
                    return Template.model_validate(t)
        return None

    def create(self, template: Template) -> Template:
        ts = now_iso()
        rec = template.model_copy(update={"id": template.id or new_id(), "created_at": ts, "updated_at": ts})
        with self._lock:
            db = self._read()
            templates = db.setdefault("templates", [])
            if any(t.get("id") == rec.id for t in templates):
                raise InputValidationError(f"Template id already exists: {rec.id}")
            templates.append(rec.model_dump())
            self._write(db)
        return rec

    def update(self, template_id: str, partial: Dict[str, Any]) -> Optional[Template]:
        """Mezcla los atributos dados sobre la plantilla guardada"""
        changes = {k: v for k, v in partial.items() if k not in READ_ONLY}
        with self._lock:
            db = self._read()
            templates = db.get("templates", [])
            for i, t in enumerate(templates):
                if t.get("id") == template_id:
                    try:
                        rec = Template.model_validate(t | changes | {"updated_at": now_iso()})
                    except ValidationError as e:
                        raise InputValidationError(f"Invalid template: {e.errors()[0]['msg']}") from e
                    templates[i] = rec.model_dump()
                    db["templates"] = templates
                    self._write(db)
                    return rec
        return None

    def delete(self, template_id: str) -> bool:
        with self._lock:
            db = self._read()
            templates = db.get("templates", [])
            for i, t in enumerate(templates):
                if t.get("id") == template_id:
                    templates.pop(i)
                    db["templates"] = templates
                    self._write(db)
                    return True
        return False

    # ---------- carteirinhas generadas ----------

    def save_card(
        self,
        template: Template,
        data: Dict[str, str],
        front_url: Optional[str],
        back_url: Optional[str],
    ) -> CardRecord:
        rec = CardRecord(
            id=new_id(),
            name=f"{template.name} - {time.strftime('%d/%m/%Y')}",
            template_id=template.id,
            template_name=template.name,
            data=data,
            front_url=front_url,
            back_url=back_url,
            created_at=now_iso(),
        )
        with self._lock:
            db = self._read()
            db.setdefault("cards", []).append(rec.model_dump())
            self._write(db)
        return rec

    def list_cards(self, template_id: str) -> List[CardRecord]:
        with self._lock:
            db = self._read()
            cards = [CardRecord.model_validate(c) for c in db.get("cards", []) if c.get("template_id") == template_id]
        cards.sort(key=lambda c: c.created_at, reverse=True)
        return cards

from __future__ import annotations
import json
import logging
from io import BytesIO
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, UploadFile, File, Form, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.security import HTTPBearer
from PIL import Image
from pydantic import ValidationError

from . import settings
from .auth import authenticate_user, create_access_token, verify_token
from .editor import TemplateEditor
from .errors import (
    CarteirinhaError, FieldRuleError, InputValidationError, ResourceLoadError, StorageError,
)
from .exporter import ExportedImage, export_both_sides, export_side
from .logging_config import setup_logging
from .models import EditorEvent, Template
from .renderer import PreviewRenderer, load_image, render_editor_overlay
from .storage import JsonStore
from .uploads import ImageStore, check_image_upload
from .utils import ensure_dir, new_id
from .validation import validate_template

setup_logging(settings.LOG_DIR)
logger = logging.getLogger(__name__)
logger.info("=== Iniciando aplicación Carteirinhas ===")

ensure_dir(settings.MEDIA_DIR)
ensure_dir(settings.EXPORTS_DIR)
ensure_dir(settings.IMAGE_CACHE_DIR)

store = JsonStore(str(settings.DB_PATH))
images = ImageStore(settings.MEDIA_DIR, settings.MEDIA_URL)
logger.info(f"Base de datos cargada desde: {settings.DB_PATH}")

# sesiones de edición y vistas previas en memoria
editors: Dict[str, TemplateEditor] = {}
previews: Dict[str, PreviewRenderer] = {}

app = FastAPI(title="Carteirinhas")
app.mount(settings.MEDIA_URL, StaticFiles(directory=str(settings.MEDIA_DIR)), name="media")
app.mount(settings.EXPORTS_URL, StaticFiles(directory=str(settings.EXPORTS_DIR)), name="exports")

security = HTTPBearer()

ERROR_STATUS = {
    InputValidationError: status.HTTP_400_BAD_REQUEST,
    FieldRuleError: status.HTTP_400_BAD_REQUEST,
    ResourceLoadError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StorageError: status.HTTP_502_BAD_GATEWAY,
}

@app.exception_handler(CarteirinhaError)
async def carteirinha_error_handler(request: Request, exc: CarteirinhaError):
    code = next((c for t, c in ERROR_STATUS.items() if isinstance(exc, t)), status.HTTP_400_BAD_REQUEST)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.message})

def get_current_user(credentials = Depends(security)) -> str:
    """Verifica el token JWT en el header Authorization"""
    try:
        user = verify_token(credentials.credentials)
        return user["username"]
    except HTTPException:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )

def _get_template(template_id: str) -> Template:
    t = store.get(template_id)
    if not t:
        raise HTTPException(404, "Template not found")
    return t

def _get_editor(session_id: str) -> TemplateEditor:
    ed = editors.get(session_id)
    if ed is None:
        raise HTTPException(404, "Editor session not found")
    return ed

def _drop_sessions(template_id: str) -> None:
    """Olvida editores y vistas previas de una plantilla borrada"""
    for sid in [s for s, ed in editors.items() if ed.template.id == template_id]:
        del editors[sid]
        previews.pop(sid, None)
    previews.pop(template_id, None)

def _check_side(side: str) -> str:
    if side not in ("front", "back"):
        raise HTTPException(400, "side must be 'front' or 'back'")
    return side

def _png(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()

async def _collect_values(template: Template, values: str, photo: Optional[UploadFile]) -> Dict[str, object]:
    """Valores del formulario: JSON {field_id: texto} + la foto (si la hay)"""
    try:
        raw = json.loads(values or "{}")
    except json.JSONDecodeError:
        raise HTTPException(400, "Invalid JSON in form field 'values'")
    if not isinstance(raw, dict):
        raise HTTPException(400, "'values' must be a JSON object")

    out: Dict[str, object] = {str(k): str(v) for k, v in raw.items() if v is not None}
    if photo is not None and photo.filename:
        content = await photo.read()
        check_image_upload(content, photo.content_type)
        photo_field = next((f for f in template.fields if f.type == "photo"), None)
        if photo_field is None:
            raise InputValidationError("Template has no photo field")
        out[photo_field.id] = content
    return out

def _load_editor_background(editor: TemplateEditor) -> None:
    source = editor.template.image_for(editor.side)
    if source:
        w, h = load_image(source).size
        editor.load_background(w, h)

@app.get("/health")
def health():
    return {"status": "ok", "templates": len(store.list_templates())}

# ---------- auth ----------

@app.post("/api/login")
def login(username: str = Form(...), password: str = Form(...)):
    """Endpoint de login - devuelve un token JWT"""
    if not authenticate_user(username, password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    access_token = create_access_token(data={"sub": username})
    logger.info(f"User '{username}' logged in successfully")
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "username": username
    }

@app.post("/api/logout")
def logout(username: str = Depends(get_current_user)):
    """El token se elimina en el cliente"""
    logger.info(f"User '{username}' logged out")
    return {"message": "Logged out successfully"}

@app.get("/api/me")
def get_me(username: str = Depends(get_current_user)):
    return {"username": username}

# ---------- plantillas ----------

@app.get("/api/templates")
def list_templates(q: Optional[str] = None):
    templates = store.list_templates(q=q)
    # respuesta ligera: sin la lista completa de campos
    return {
        "templates": [{
            "id": t.id,
            "name": t.name,
            "front_image_url": t.front_image_url,
            "back_image_url": t.back_image_url,
            "width": t.width,
            "height": t.height,
            "field_count": len(t.fields),
            "created_at": t.created_at,
            "updated_at": t.updated_at,
        } for t in templates],
        "total": len(templates)
    }

@app.get("/api/templates/{template_id}")
def get_template(template_id: str):
    return _get_template(template_id).model_dump()

@app.post("/api/templates")
def create_template(payload: dict, username: str = Depends(get_current_user)):
    logger.info(f"User '{username}' creating new template")
    try:
        template = Template.model_validate(payload.get("data", payload) if payload else {})
    except ValidationError as e:
        raise HTTPException(400, f"Invalid template: {e.errors()[0]['msg']}")
    rec = store.create(template)
    logger.info(f"Template created: {rec.id}")
    return rec.model_dump()

@app.put("/api/templates/{template_id}")
def update_template(template_id: str, payload: dict, username: str = Depends(get_current_user)):
    logger.info(f"User '{username}' updating template {template_id}")
    changes = payload.get("data", payload)
    if not isinstance(changes, dict):
        raise HTTPException(400, "Template data must be a JSON object")
    rec = store.update(template_id, changes)
    if not rec:
        raise HTTPException(404, "Template not found")
    logger.info(f"Template updated: {template_id}")
    return rec.model_dump()

@app.delete("/api/templates/{template_id}")
def delete_template(template_id: str, username: str = Depends(get_current_user)):
    logger.info(f"User '{username}' deleting template {template_id}")
    if not store.delete(template_id):
        raise HTTPException(404, "Template not found")
    images.delete(template_id, "front")
    images.delete(template_id, "back")
    _drop_sessions(template_id)
    logger.info(f"Template deleted: {template_id}")
    return {"status": "deleted"}

@app.get("/api/templates/{template_id}/validate")
def api_validate(template_id: str):
    return validate_template(_get_template(template_id)).model_dump()

@app.post("/api/templates/{template_id}/images/{side}")
async def upload_image(template_id: str, side: str, image: UploadFile = File(...), username: str = Depends(get_current_user)):
    _check_side(side)
    _get_template(template_id)
    content = await image.read()
    url = images.upload(template_id, content, image.content_type, side)
    key = "front_image_url" if side == "front" else "back_image_url"
    rec = store.update(template_id, {key: url})
    logger.info(f"User '{username}' uploaded {side} image for {template_id}")
    return {"ok": True, key: url, "template": rec.model_dump()}

@app.delete("/api/templates/{template_id}/images/{side}")
def delete_image(template_id: str, side: str, username: str = Depends(get_current_user)):
    _check_side(side)
    _get_template(template_id)
    images.delete(template_id, side)
    changes = {"front_image_url": ""} if side == "front" else {"back_image_url": None}
    rec = store.update(template_id, changes)
    logger.info(f"User '{username}' deleted {side} image of {template_id}")
    return rec.model_dump()

# ---------- editor ----------

@app.post("/api/templates/{template_id}/editor")
def open_editor(template_id: str, username: str = Depends(get_current_user)):
    editor = TemplateEditor(_get_template(template_id))
    _load_editor_background(editor)
    session_id = new_id()
    editors[session_id] = editor
    logger.info(f"User '{username}' opened editor {session_id} for {template_id}")
    return {"session_id": session_id, **editor.state()}

@app.post("/api/editor/{session_id}/events")
def editor_events(session_id: str, payload: dict, username: str = Depends(get_current_user)):
    """
    Aplica una lista de eventos en orden. Cada evento es atómico: si uno
    se rechaza, los anteriores quedan aplicados y se devuelve el error.
    """
    editor = _get_editor(session_id)
    created = []
    for raw in payload.get("events", []):
        try:
            event = EditorEvent.model_validate(raw)
        except ValidationError as e:
            raise HTTPException(400, f"Invalid event: {e.errors()[0]['msg']}")
        result = editor.dispatch(event)
        if event.type == "set_side":
            _load_editor_background(editor)
        if result is not None and event.type == "pointer_up":
            created.append(result.id)
    return {"session_id": session_id, "created": created, **editor.state()}

@app.get("/api/editor/{session_id}/overlay.png")
def editor_overlay(session_id: str):
    editor = _get_editor(session_id)
    source = editor.template.image_for(editor.side)
    if not source:
        raise HTTPException(404, "No background image for this side")
    img = render_editor_overlay(editor.template, editor.visible_fields(), load_image(source), editor.selected_id)
    return Response(content=_png(img), media_type="image/png")

@app.post("/api/editor/{session_id}/save")
def save_editor(session_id: str, username: str = Depends(get_current_user)):
    editor = _get_editor(session_id)
    tpl = editor.template
    rec = store.update(tpl.id, {"fields": [f.model_dump() for f in tpl.fields]})
    if not rec:
        raise HTTPException(404, "Template not found")
    editor.replace_template(rec)
    logger.info(f"User '{username}' saved template {tpl.id} from editor {session_id}")
    return {"template": rec.model_dump(), "validation": validate_template(rec).model_dump()}

@app.delete("/api/editor/{session_id}")
def close_editor(session_id: str, username: str = Depends(get_current_user)):
    _get_editor(session_id)
    del editors[session_id]
    previews.pop(session_id, None)
    return {"status": "closed"}

# ---------- vista previa y exportación ----------

@app.post("/api/templates/{template_id}/preview")
async def api_preview(
    template_id: str,
    side: str = Form("front"),
    values: str = Form("{}"),
    session: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    username: str = Depends(get_current_user),
):
    """Renderiza un lado rellenado en tiempo real sin guardarlo"""
    _check_side(side)
    template = _get_template(template_id)
    vals = await _collect_values(template, values, photo)

    # una vista previa por sesión de editor abierta, o una por plantilla
    if session and _get_editor(session).template.id != template_id:
        raise HTTPException(400, "Editor session belongs to another template")
    renderer = previews.setdefault(session or template_id, PreviewRenderer())
    img = await renderer.render(template, side, vals)
    if img is None:
        raise HTTPException(409, "Preview superseded by a newer request")
    return Response(content=_png(img), media_type="image/png")

def _require_valid(template: Template) -> None:
    result = validate_template(template)
    if not result.is_valid:
        raise HTTPException(400, {"message": "Template is not valid", "errors": result.errors})

def _record_card(template: Template, vals: Dict[str, object], exported: List[ExportedImage]):
    urls = {}
    for out in exported:
        out.save(settings.EXPORTS_DIR)
        urls[out.side] = f"{settings.EXPORTS_URL}/{out.filename}"
    text_values = {k: v for k, v in vals.items() if isinstance(v, str)}
    return store.save_card(template, text_values, urls.get("front"), urls.get("back")), urls

@app.post("/api/templates/{template_id}/export/{side}")
async def api_export_side(
    template_id: str,
    side: str,
    values: str = Form("{}"),
    photo: Optional[UploadFile] = File(None),
    username: str = Depends(get_current_user),
):
    _check_side(side)
    template = _get_template(template_id)
    _require_valid(template)
    vals = await _collect_values(template, values, photo)

    out = await export_side(template, side, vals)
    card, _ = _record_card(template, vals, [out])
    logger.info(f"User '{username}' exported {side} of {template_id} as card {card.id}")
    return Response(content=out.content, media_type="image/png", headers={
        "Content-Disposition": f"attachment; filename=\"{out.filename}\""
    })

@app.post("/api/templates/{template_id}/export")
async def api_export_both(
    template_id: str,
    values: str = Form("{}"),
    photo: Optional[UploadFile] = File(None),
    username: str = Depends(get_current_user),
):
    template = _get_template(template_id)
    _require_valid(template)
    vals = await _collect_values(template, values, photo)

    exported = await export_both_sides(template, vals)
    card, urls = _record_card(template, vals, exported)
    logger.info(f"User '{username}' exported both sides of {template_id} as card {card.id}")
    return {
        "files": [{"side": o.side, "filename": o.filename, "url": urls[o.side]} for o in exported],
        "card": card.model_dump(),
    }

@app.get("/api/templates/{template_id}/cards")
def list_cards(template_id: str):
    _get_template(template_id)
    return {"cards": [c.model_dump() for c in store.list_cards(template_id)]}

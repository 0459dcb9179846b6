import json

import pytest
from fastapi.testclient import TestClient

from carteirinhas import main
from carteirinhas.main import app
from conftest import png_bytes

client = TestClient(app)


@pytest.fixture(scope="module")
def auth():
    r = client.post("/api/login", data={"username": "admin", "password": "admin"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def upload(tpl_id, side, auth, content=None, content_type="image/png"):
    content = png_bytes(size=(800, 500)) if content is None else content
    return client.post(
        f"/api/templates/{tpl_id}/images/{side}",
        files={"image": (f"{side}.png", content, content_type)},
        headers=auth,
    )


@pytest.fixture
def template_id(auth):
    r = client.post("/api/templates", json={"name": "Carteira OAB", "width": 800, "height": 500}, headers=auth)
    assert r.status_code == 200
    tpl_id = r.json()["id"]
    assert upload(tpl_id, "front", auth).status_code == 200
    assert upload(tpl_id, "back", auth).status_code == 200
    r = client.put(f"/api/templates/{tpl_id}", json={"fields": [
        {"id": "nome", "name": "Nome", "type": "text", "side": "front",
         "x": 100, "y": 100, "width": 200, "height": 30, "required": True},
        {"id": "foto", "name": "Foto", "type": "photo", "side": "back",
         "x": 200, "y": 200, "width": 150, "height": 150, "locked": True},
    ]}, headers=auth)
    assert r.status_code == 200
    return tpl_id


def test_health():
    assert client.get("/health").json()["status"] == "ok"


def test_login_rejects_bad_credentials():
    r = client.post("/api/login", data={"username": "admin", "password": "nope"})
    assert r.status_code == 401


def test_protected_routes_need_token():
    assert client.get("/api/me").status_code in (401, 403)
    r = client.get("/api/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_me(auth):
    assert client.get("/api/me", headers=auth).json() == {"username": "admin"}


def test_template_crud(template_id, auth):
    r = client.get(f"/api/templates/{template_id}")
    body = r.json()
    assert body["front_image_url"] == f"/media/templates/{template_id}/front.png"
    assert [f["id"] for f in body["fields"]] == ["nome", "foto"]

    listing = client.get("/api/templates", params={"q": "oab"}).json()
    assert template_id in [t["id"] for t in listing["templates"]]

    assert client.get(f"/api/templates/{template_id}/validate").json() == {"is_valid": True, "errors": []}

    # la imagen subida se sirve como estático
    assert client.get(body["front_image_url"]).status_code == 200

    assert client.delete(f"/api/templates/{template_id}", headers=auth).status_code == 200
    assert client.get(f"/api/templates/{template_id}").status_code == 404


def test_upload_rejects_non_image(template_id, auth):
    r = upload(template_id, "front", auth, content=b"%PDF-1.4", content_type="application/pdf")
    assert r.status_code == 400
    assert r.json()["detail"] == "Please select an image file"


def test_editor_session(template_id, auth):
    r = client.post(f"/api/templates/{template_id}/editor", headers=auth)
    assert r.status_code == 200
    sid = r.json()["session_id"]

    r = client.post(f"/api/editor/{sid}/events", json={"events": [
        {"type": "pointer_down", "x": 400, "y": 50, "name": "CPF"},
        {"type": "pointer_move", "x": 600, "y": 90},
        {"type": "pointer_up", "x": 600, "y": 90},
    ]}, headers=auth)
    assert r.status_code == 200
    state = r.json()
    assert len(state["created"]) == 1
    assert len(state["template"]["fields"]) == 3

    # segunda foto: regla de campos
    r = client.post(f"/api/editor/{sid}/events", json={"events": [
        {"type": "set_field_type", "value": "photo"},
        {"type": "pointer_down", "x": 500, "y": 300, "name": "Foto 2"},
    ]}, headers=auth)
    assert r.status_code == 400
    assert r.json()["detail"] == "Template already has a photo field"

    overlay = client.get(f"/api/editor/{sid}/overlay.png")
    assert overlay.headers["content-type"] == "image/png"

    r = client.post(f"/api/editor/{sid}/save", headers=auth)
    assert r.status_code == 200
    assert r.json()["validation"]["is_valid"] is True
    assert len(client.get(f"/api/templates/{template_id}").json()["fields"]) == 3

    assert client.delete(f"/api/editor/{sid}", headers=auth).status_code == 200
    assert client.get(f"/api/editor/{sid}/overlay.png").status_code == 404


def test_preview_with_photo(template_id, auth):
    r = client.post(
        f"/api/templates/{template_id}/preview",
        data={"side": "back", "values": json.dumps({"nome": "Ana"})},
        files={"photo": ("foto.png", png_bytes(size=(60, 80), color=(255, 0, 0)), "image/png")},
        headers=auth,
    )
    assert r.status_code == 200
    assert r.content.startswith(b"\x89PNG")


def test_preview_rejects_bad_values(template_id, auth):
    r = client.post(f"/api/templates/{template_id}/preview", data={"values": "{oops"}, headers=auth)
    assert r.status_code == 400


def test_export_and_cards(template_id, auth):
    values = json.dumps({"nome": "Ana Souza"})
    r = client.post(f"/api/templates/{template_id}/export/front", data={"values": values}, headers=auth)
    assert r.status_code == 200
    assert "documento-Carteira_OAB-front-" in r.headers["content-disposition"]
    assert r.content.startswith(b"\x89PNG")

    r = client.post(f"/api/templates/{template_id}/export", data={"values": values}, headers=auth)
    assert r.status_code == 200
    body = r.json()
    assert [f["side"] for f in body["files"]] == ["front", "back"]
    assert body["card"]["data"] == {"nome": "Ana Souza"}
    assert client.get(body["files"][1]["url"]).status_code == 200

    cards = client.get(f"/api/templates/{template_id}/cards").json()["cards"]
    assert len(cards) == 2


def test_export_invalid_template_is_refused(template_id, auth):
    client.put(f"/api/templates/{template_id}", json={"fields": []}, headers=auth)
    r = client.post(f"/api/templates/{template_id}/export/front", headers=auth)
    assert r.status_code == 400
    assert "Template must have at least one field" in r.json()["detail"]["errors"]


def test_export_back_without_back_image(template_id, auth):
    r = client.delete(f"/api/templates/{template_id}/images/back", headers=auth)
    assert r.json()["back_image_url"] is None
    r = client.post(f"/api/templates/{template_id}/export/back", headers=auth)
    assert r.status_code == 422
    assert r.json()["detail"] == "Template has no back image"


def test_update_rejects_non_object_data(template_id, auth):
    r = client.put(f"/api/templates/{template_id}", json={"data": ["nome"]}, headers=auth)
    assert r.status_code == 400


def test_preview_state_is_released(template_id, auth):
    sid = client.post(f"/api/templates/{template_id}/editor", headers=auth).json()["session_id"]
    r = client.post(f"/api/templates/{template_id}/preview", data={"session": sid}, headers=auth)
    assert r.status_code == 200
    assert sid in main.previews

    client.delete(f"/api/editor/{sid}", headers=auth)
    assert sid not in main.previews

    # sesiones inventadas no crean entradas
    r = client.post(f"/api/templates/{template_id}/preview", data={"session": "made-up"}, headers=auth)
    assert r.status_code == 404
    assert "made-up" not in main.previews

    sid = client.post(f"/api/templates/{template_id}/editor", headers=auth).json()["session_id"]
    client.post(f"/api/templates/{template_id}/preview", data={"session": sid}, headers=auth)
    client.post(f"/api/templates/{template_id}/preview", headers=auth)
    assert template_id in main.previews

    client.delete(f"/api/templates/{template_id}", headers=auth)
    assert sid not in main.editors
    assert sid not in main.previews
    assert template_id not in main.previews

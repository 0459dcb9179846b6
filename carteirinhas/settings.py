from __future__ import annotations
import os
from pathlib import Path

from dotenv import load_dotenv

BASE = Path(__file__).resolve().parent.parent
load_dotenv(BASE / ".env")

def _env(name: str, default: str) -> str:
    return os.environ.get(f"CARTEIRINHAS_{name}", default)

DATA_DIR = Path(_env("DATA_DIR", str(BASE / "data")))
LOG_DIR = Path(_env("LOG_DIR", str(DATA_DIR / "logs")))
MEDIA_DIR = DATA_DIR / "media"
EXPORTS_DIR = DATA_DIR / "exports"
IMAGE_CACHE_DIR = DATA_DIR / "images"
FONT_CACHE_DIR = DATA_DIR / "fonts"
DB_PATH = DATA_DIR / "templates.json"

# Prefijo público bajo el que se sirven las imágenes subidas
MEDIA_URL = _env("MEDIA_URL", "/media")
EXPORTS_URL = _env("EXPORTS_URL", "/exports")

MAX_UPLOAD_BYTES = int(_env("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))  # 5 MB

# Vacío = no descargar fuentes (se usa la de Pillow)
FONT_URL = _env("FONT_URL", "https://raw.githubusercontent.com/openmaptiles/fonts/master/roboto/Roboto-Regular.ttf")

SECRET_KEY = _env("SECRET_KEY", "your-secret-key-change-in-production")
AUTH_USERNAME = _env("AUTH_USERNAME", "admin")
AUTH_PASSWORD = _env("AUTH_PASSWORD", "admin")
ACCESS_TOKEN_EXPIRE_MINUTES = int(_env("TOKEN_EXPIRE_MINUTES", str(60 * 24)))  # 24 horas

import os
from pathlib import Path
from dotenv import load_dotenv

# Always load .env from the package folder
load_dotenv(Path(__file__).resolve().parent / ".env")


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


SAFEROUTE_API_URL = os.getenv("SAFEROUTE_API_URL", "http://127.0.0.1:4000/api").rstrip("/")

GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "").strip()
GOOGLE_MAPS_BASE_URL = os.getenv("GOOGLE_MAPS_BASE_URL", "https://maps.googleapis.com/maps/api")

ORS_API_KEY = os.getenv("ORS_API_KEY", "").strip()
ORS_BASE_URL = os.getenv("ORS_BASE_URL", "https://api.openrouteservice.org")

# Skip the client-side directions attempt and always ask the backend
FORCE_SERVER_DIRECTIONS = _flag("FORCE_SERVER_DIRECTIONS")

LOOKBACK_DAYS = int(os.getenv("LOOKBACK_DAYS", "90"))
MAX_ALTERNATIVES = int(os.getenv("MAX_ALTERNATIVES", "3"))

HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT_S", "10"))
DIRECTIONS_TIMEOUT_S = float(os.getenv("DIRECTIONS_TIMEOUT_S", "20"))

APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

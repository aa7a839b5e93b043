import os
from datetime import timedelta

from dotenv import load_dotenv

# Streamlit Cloud exposes top-level secrets as environment variables,
# local runs pick them up from .env
load_dotenv()


def _flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _seconds(name, default):
    value = os.getenv(name)
    try:
        return float(value) if value else default
    except ValueError:
        return default


SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ===========================
# MATCHING
# ===========================
MATCH_WINDOW = timedelta(minutes=30)
MATCH_TIMEZONE = os.getenv("MATCH_TIMEZONE", "UTC")
LOCATIONS = ("Campus", "Kuril", "Future Park")

# ===========================
# DATA CACHE
# ===========================
CACHE_TTL = timedelta(minutes=15)
CACHE_DIR = os.getenv("CACHE_DIR", os.path.join(os.path.expanduser("~"), ".ride_partner", "cache"))

# ===========================
# OFFLINE LAYER
# ===========================
APP_ORIGIN = os.getenv("APP_ORIGIN", "http://localhost:8501")
OFFLINE_CACHE_NAME = "ride-partner-v2"
STATIC_ASSETS = (
    "/",
    "/index.html",
    "/manifest.json",
    "/favicon.ico",
    "/logo192.png",
    "/logo512.png",
    "/static/js/main.bundle.js",
    "/static/css/main.css",
)
OFFLINE_FALLBACK_PATH = "/index.html"
API_PATH_SEGMENT = "/api/"
CACHE_API_RESPONSES = _flag("CACHE_API_RESPONSES", True)
NETWORK_TIMEOUT = _seconds("NETWORK_TIMEOUT", 10.0)
PROBE_TIMEOUT = _seconds("PROBE_TIMEOUT", 2.0)
PROBE_INTERVAL = _seconds("PROBE_INTERVAL", 30.0)

# ===========================
# BACKEND
# ===========================
AVATAR_BUCKET = "avatars"
MAX_AVATAR_BYTES = 10 * 1024 * 1024
AUDIT_LOG_LIMIT = 100

"""Configuration and environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from the package)
load_dotenv(Path(__file__).parent.parent / ".env")

# --- API Keys ---
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")

# --- OpenRouter ---
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
IMAGE_EDIT_MODEL = os.getenv("IMAGE_EDIT_MODEL", "google/gemini-3-pro-image-preview")
APP_REFERER = "https://roomcanvas.app"
APP_TITLE = "RoomCanvas"

# --- Supabase ---
SUPABASE_URL = os.getenv("NEXT_PUBLIC_SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "room-images")

# --- Backend ---
BACKEND_PUBLIC_URL = os.getenv("BACKEND_PUBLIC_URL", "http://localhost:8100")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# --- Rendering ---
RENDER_TIMEOUT_S = float(os.getenv("RENDER_TIMEOUT_S", "120"))
PLACEMENT_TIMEOUT_S = float(os.getenv("PLACEMENT_TIMEOUT_S", "120"))
MASK_TIMEOUT_S = float(os.getenv("MASK_TIMEOUT_S", "120"))
SURFACE_TEMPERATURE = 0.1
PLACEMENT_TEMPERATURE = 0.4
MASK_TEMPERATURE = 0.6
# Used only for the progress estimate shown while waiting
SURFACE_SECONDS_PER_EDIT = 10
PLACEMENT_SECONDS_PER_EDIT = 15
MASK_SECONDS_PER_EDIT = 15
PROGRESS_TICK_S = 0.5

# --- Geometry ---
MIN_POLYGON_AREA_PX = float(os.getenv("MIN_POLYGON_AREA_PX", "1000"))
# Default brush diameter for mask edits, as a fraction of the image width
MASK_BRUSH_SIZE = 0.04

# --- Feature Flags ---
# Without Supabase credentials the store keeps everything in memory and
# images are returned as data URLs.
MOCK_MODE = os.getenv("MOCK_MODE", "false").lower() == "true" or not SUPABASE_URL

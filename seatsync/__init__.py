"""Top-level package for the Seat Sync control-plane FastAPI application."""

__all__ = [
    "APP_ENV",
    "JWT_SECRET",
    "SUPABASE_URL",
    "SUPABASE_KEY",
]

from dotenv import load_dotenv
import os
load_dotenv()

# Environment variables
SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY")

if not SUPABASE_URL or not SUPABASE_KEY:
    raise RuntimeError("Supabase env vars not configured")

# Dashboard session tokens are issued elsewhere; we only verify them.
JWT_SECRET = os.environ.get("JWT_SECRET")

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET not configured")

APP_ENV = os.getenv("APP_ENV", "production")

"""Route Stats configuration — loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(REPO_ROOT / ".env")

# RideWithGPS API
RWGPS_API_BASE = os.environ.get("RWGPS_API_BASE", "https://ridewithgps.com/api/v1")
RWGPS_ROUTE_URL = os.environ.get("RWGPS_ROUTE_URL", "https://ridewithgps.com/routes")
RWGPS_API_KEY = os.environ.get("RWGPS_API_KEY", "")
RWGPS_AUTH_TOKEN = os.environ.get("RWGPS_AUTH_TOKEN", "")
RWGPS_TIMEOUT_SECONDS = float(os.environ.get("RWGPS_TIMEOUT_SECONDS", "15"))

# Track simplification for the map widget
TRACK_MAX_POINTS = int(os.environ.get("TRACK_MAX_POINTS", "150"))

# Organization route list pagination (200 is the RWGPS maximum)
CLUB_ROUTES_PAGE_SIZE = int(os.environ.get("CLUB_ROUTES_PAGE_SIZE", "200"))
CLUB_ROUTES_MAX_PAGES = int(os.environ.get("CLUB_ROUTES_MAX_PAGES", "50"))
CLUB_ROUTES_INDEX_KEY = os.environ.get("CLUB_ROUTES_INDEX_KEY", "org-routes")

# Cache store: "memory" (single process) or "supabase"
CACHE_BACKEND = os.environ.get("CACHE_BACKEND", "memory")
CACHE_TABLE = os.environ.get("CACHE_TABLE", "route_cache")

# Supabase
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "")

# Cache lifetimes (seconds). Staleness must stay below the hard TTL.
CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", "86400"))
STALE_THRESHOLD_SECONDS = int(os.environ.get("STALE_THRESHOLD_SECONDS", "3600"))
CLUB_ROUTES_TTL_SECONDS = int(os.environ.get("CLUB_ROUTES_TTL_SECONDS", "3600"))

# Browser cache lifetimes sent in Cache-Control
HTML_MAX_AGE_SECONDS = int(os.environ.get("HTML_MAX_AGE_SECONDS", "300"))
CLUB_ROUTES_MAX_AGE_SECONDS = int(os.environ.get("CLUB_ROUTES_MAX_AGE_SECONDS", "3600"))

# Technical difficulty rule-set: "categorical" or "elevation_ratio"
SCORING_STRATEGY = os.environ.get("SCORING_STRATEGY", "categorical")

# Background jobs (club route refresh, expired row sweep)
SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")

# Server
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8787"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info")

#!/usr/bin/env python3
"""Route Stats — RideWithGPS route cards for the content site.

Launch: python3 run_route_stats.py
Serves at http://0.0.0.0:8787 (or PORT env var)
"""

import uvicorn

from route_stats.config import (
    CACHE_BACKEND,
    HOST,
    LOG_LEVEL,
    PORT,
    RWGPS_API_KEY,
    RWGPS_AUTH_TOKEN,
    SUPABASE_URL,
)


def main():
    print("=" * 60)
    print("  Route Stats")
    print("=" * 60)

    if not RWGPS_API_KEY or not RWGPS_AUTH_TOKEN:
        print("\n  WARNING: RWGPS_API_KEY / RWGPS_AUTH_TOKEN not set.")
        print("  Upstream requests will fail with an authentication error.\n")

    if CACHE_BACKEND == "supabase" and not SUPABASE_URL:
        print("\n  WARNING: CACHE_BACKEND=supabase but SUPABASE_URL is not set.")
        print("    Set SUPABASE_URL and SUPABASE_SERVICE_KEY, or CACHE_BACKEND=memory\n")

    url = f"http://{HOST}:{PORT}"
    print(f"  Cache backend: {CACHE_BACKEND}")
    print(f"\n  Route stats: {url}/route-stats?id=<route id>")
    print(f"  Club routes: {url}/club-routes")
    print("  Press Ctrl+C to stop\n")

    from route_stats.app import create_app
    app = create_app()
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Metrionix API Startup Script

Starts the integrations API (OAuth connections, metric sync, webhooks).

Usage:
    python start_api.py                  # dev server with reload on :8000
    python start_api.py --port 9000 --no-reload
"""

import argparse
import sys
from pathlib import Path

import uvicorn

REQUIRED_SECRETS = ("AUTH_JWT_SECRET", "TOKEN_ENCRYPTION_KEY")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Metrionix integrations API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload (production)")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    print(f"🚀 Starting Metrionix integrations API on {args.host}:{args.port}")
    print(f"   📖 OpenAPI docs: http://localhost:{args.port}/docs")

    if not Path(".env").exists():
        print("⚠️  No .env file found. Copy .env.example to .env, then run generate_keys.py for:")
        print(f"   {', '.join(REQUIRED_SECRETS)}")

    try:
        uvicorn.run(
            "metrionix.main:app",
            host=args.host,
            port=args.port,
            reload=not args.no_reload,
            reload_dirs=["metrionix"] if not args.no_reload else None,
            proxy_headers=True,
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\n👋 Metrionix API stopped")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
adsync API Startup Script

Starts the adsync FastAPI server for local development.
"""

import sys
from pathlib import Path

import uvicorn


def main():
    """Start the adsync API server."""
    print("Starting adsync API Server...")
    print("Documentation will be available at:")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   ReDoc:       http://localhost:8000/redoc")
    print("")

    # Check for environment file
    if not Path(".env").exists():
        print("WARNING: No .env file found!")
        print("   Run `python generate_keys.py` to create one from .env.template")
        print("")

    try:
        uvicorn.run(
            "adsync.main:app",
            host="0.0.0.0",
            port=8000,
            reload=True,
            reload_dirs=["adsync"],
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\nShutting down adsync API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

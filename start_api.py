#!/usr/bin/env python3
"""
Cart Recovery Analytics API Startup Script

Starts the FastAPI server with uvicorn.
"""

import os
from pathlib import Path

import uvicorn


def main():
    """Start the analytics API server."""
    print("Starting Cart Recovery Analytics API...")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   ReDoc:       http://localhost:8000/redoc")
    print("")

    if not Path(".env").exists():
        print("WARNING: No .env file found!")
        print("   Required variables: DATABASE_URL, JWT_SECRET, TOKEN_ENCRYPTION_KEY")
        print("")

    uvicorn.run(
        "cartrecovery.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENVIRONMENT", "development") == "development",
        log_level="info",
    )


if __name__ == "__main__":
    main()

"""
Ask Your Graph Server Entry Point

Run with: python main.py
Or with uvicorn: uvicorn main:app --reload
"""

import os

import uvicorn

from app import app  # noqa: F401

if __name__ == "__main__":
    # Use reload only in development
    is_dev = os.getenv("ENVIRONMENT", "development") == "development"

    uvicorn.run(
        "app:app",
        host=os.getenv("ASKGRAPH_HOST", "0.0.0.0"),
        port=int(os.getenv("ASKGRAPH_PORT", "8000")),
        reload=is_dev,
        log_level="info",
    )

#!/usr/bin/env python3
"""
Backend server launcher script.

Starts the uvicorn server for the PMO API.
"""

import os

if __name__ == "__main__":
    import uvicorn

    pmo_dir = os.path.dirname(os.path.abspath(__file__))
    uvicorn.run(
        "pmo.api:app",
        host=os.getenv("PMO_HOST", "127.0.0.1"),
        port=int(os.getenv("PMO_PORT", "8000")),
        reload=True,
        reload_dirs=[pmo_dir],
    )

#!/usr/bin/env python3

"""
Tradebook web API
Options structure bookkeeping for Deribit and Coincall exports
"""

import os

import uvicorn
from loguru import logger

from tradebook.main import create_app

app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Starting Tradebook on http://localhost:{port}")
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info"
    )

"""
FastAPI application factory for the structure ledger.
"""

import os
import sys
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from tradebook.database.db_manager import DatabaseManager
from tradebook.routers import health, imports, playbooks, structures

LOG_FILE = "logs/tradebook_{time}.log"


def configure_logging(level: Optional[str] = None, log_to_file: bool = True):
    """Console sink at LOG_LEVEL plus a rotating file sink."""
    level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_to_file:
        logger.add(
            LOG_FILE,
            rotation="1 day",
            retention="7 days",
            level=level,
        )


def create_app(db_url: Optional[str] = None, log_to_file: bool = True) -> FastAPI:
    load_dotenv()
    configure_logging(log_to_file=log_to_file)

    app = FastAPI(
        title="Tradebook",
        description="Options structure bookkeeping for Deribit and Coincall",
        version="1.0.0",
    )

    # Add CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    db = DatabaseManager(db_url=db_url or os.getenv("DATABASE_URL"))
    db.initialize_database()
    app.state.db = db

    app.include_router(health.router)
    app.include_router(imports.router)
    app.include_router(structures.router)
    app.include_router(playbooks.router)

    logger.info("Tradebook API ready")
    return app

"""FastAPI application factory.

Main entry point for the pyqlab Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pyqlab.db.papers_repository import get_all_papers
from pyqlab.web.deps import data_dir_dependency
from pyqlab.web.routes import (
    answers_router,
    health_router,
    papers_router,
    results_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the database and log what is available on startup."""
    data_dir = data_dir_dependency()
    papers = get_all_papers()
    logger.info(
        "api_startup",
        data_dir=str(data_dir.absolute()),
        papers_found=len(papers),
        ready=sum(1 for p in papers if p.status == "questions_ready"),
    )
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="pyqlab API",
        description="Previous-year papers, tests and grading",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(papers_router)
    app.include_router(results_router)
    app.include_router(answers_router)

    return app


app = create_app()

"""Route handlers for the Web API."""

from pyqlab.web.routes.health import router as health_router
from pyqlab.web.routes.papers import router as papers_router
from pyqlab.web.routes.results import router as results_router
from pyqlab.web.routes.answers import router as answers_router

__all__ = [
    "health_router",
    "papers_router",
    "results_router",
    "answers_router",
]

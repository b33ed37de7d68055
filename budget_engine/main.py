import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .config import settings
from .core.errors import BudgetValidationError, NotFoundError
from .database import init_db
from .routers import allocations as allocations_router
from .routers import categories as categories_router
from .routers import goals as goals_router


logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, field=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "field": field})


def create_app() -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    app = FastAPI(title="Envelope Budget – Backend", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BudgetValidationError)
    async def on_validation_error(request: Request, exc: BudgetValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, exc.message, exc.field)

    @app.exception_handler(NotFoundError)
    async def on_not_found(request: Request, exc: NotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, exc.message)

    @app.exception_handler(RequestValidationError)
    async def on_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
        return _error(status.HTTP_400_BAD_REQUEST, first.get("msg", "Invalid request"), ".".join(loc) or None)

    @app.exception_handler(OperationalError)
    async def on_database_busy(request: Request, exc: OperationalError):
        logger.error("database_error path=%s error=%s", request.url.path, exc)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Database is busy, please retry")

    @app.on_event("startup")
    def on_startup():
        init_db()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(categories_router.router)
    app.include_router(allocations_router.router)
    app.include_router(goals_router.router)

    return app


app = create_app()

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from reservations import settings
from reservations.errors import ConflictError, NotFoundError, ReservationError
from reservations.routers import admin, orders, venues
from reservations.scopes import ORDER_SCOPE_DESCRIPTIONS, VENUE_SCOPE_DESCRIPTIONS

TORTOISE_MODULES = {"models": ["reservations.models"]}

_STATUS_BY_ERROR: dict[type[ReservationError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def reservation_error_handler(
    request: Request, exc: ReservationError
) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(
        type(exc), status.HTTP_422_UNPROCESSABLE_ENTITY
    )
    logger.warning(
        "{} {} -> {} {}", request.method, request.url.path, status_code, exc
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code.value},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReservationError, reservation_error_handler)


def include_routers(app: FastAPI) -> None:
    app.include_router(venues.router)
    app.include_router(venues.admin_router)
    app.include_router(orders.router)
    app.include_router(admin.router)


def _scopes_description() -> str:
    lines = ["Scopes:"]
    for scope, text in {**VENUE_SCOPE_DESCRIPTIONS, **ORDER_SCOPE_DESCRIPTIONS}.items():
        lines.append(f"- `{scope}`: {text}")
    return "\n".join(lines)


def create_app() -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with RegisterTortoise(
            app,
            db_url=settings.db_url,
            modules=TORTOISE_MODULES,
            generate_schemas=settings.generate_schemas,
            use_tz=True,
        ):
            logger.info("Reservations service started (db={})", settings.db_url)
            yield
        logger.info("Reservations service stopped")

    app = FastAPI(
        title="Venue Reservations",
        description=_scopes_description(),
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    include_routers(app)
    return app


app = create_app()

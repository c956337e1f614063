import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay import routes, webhook
from relay.config import Settings
from relay.database import Base, create_session_factory
from relay.errors import RelayError
from relay.fallback import AdminAlerter, FallbackStore
from relay.gateway import PaymentGateway
from relay.notifier import build_notifier

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def relay_error_handler(request: Request, exc: RelayError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(
    settings: Settings | None = None,
    *,
    gateway=None,
    notifier=None,
    fallback=None,
    alerter=None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    engine, SessionLocal = create_session_factory(settings.database_url)
    Base.metadata.create_all(bind=engine)

    app = FastAPI(title="Stripe Payment Relay")
    app.state.settings = settings
    app.state.engine = engine
    app.state.SessionLocal = SessionLocal
    app.state.gateway = gateway or PaymentGateway(settings)
    app.state.notifier = notifier or build_notifier(settings, SessionLocal)
    app.state.fallback = fallback or FallbackStore(settings.fallback_path)
    app.state.alerter = alerter or AdminAlerter(settings)

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # the webhook router reads raw bytes; everything else is parsed JSON
    app.include_router(webhook.router)
    app.include_router(routes.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(
        "Relay ready: currency=%s/%s delivery=%s",
        settings.currency_mode,
        settings.settlement_currency if settings.currency_mode == "converted" else settings.source_currency,
        settings.delivery_mode,
    )
    return app


def run() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()

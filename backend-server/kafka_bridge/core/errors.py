import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kafka_bridge.core.exceptions import AdminError, BrokerError, PublishError

logger = logging.getLogger(__name__)


def _problem(status: int, title: str, detail: str):
    return {"type": "about:blank", "status": status, "title": title, "detail": detail}


def _validation_detail(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=_problem(400, "Bad Request", _validation_detail(exc)))

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_problem(400, "Bad Request", str(exc)))

    @app.exception_handler(PublishError)
    async def publish_error_handler(_: Request, exc: PublishError):
        logger.warning("publish failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content=_problem(500, "Failed to send message to Kafka", str(exc)),
        )

    @app.exception_handler(AdminError)
    async def admin_error_handler(_: Request, exc: AdminError):
        logger.warning("topic administration failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content=_problem(500, "Failed to administer Kafka topics", str(exc)),
        )

    @app.exception_handler(BrokerError)
    async def broker_error_handler(_: Request, exc: BrokerError):
        return JSONResponse(status_code=500, content=_problem(500, "Kafka Unavailable", str(exc)))

    # Catch-all
    @app.exception_handler(Exception)
    async def unhandled(_: Request, exc: Exception):
        logger.exception("unhandled error", exc_info=exc)
        return JSONResponse(status_code=500, content=_problem(500, "Internal Server Error", str(exc)))

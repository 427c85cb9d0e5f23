from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from survey_engine.core.config import settings
from survey_engine.core.errors import SurveyEngineError
from survey_engine.core.logging_setup import configure_logging

from .routes import router
from .survey_data_provider import get_data_provider

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build the survey API application."""

    app = FastAPI(
        title="Survey Response API",
        description="Question delivery, answer capture, completion tracking and results export",
        version="1.0.0",
    )
    app.include_router(router)

    @app.exception_handler(SurveyEngineError)
    async def survey_error_handler(request: Request, exc: SurveyEngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})

    @app.get("/healthz", summary="Liveness probe")
    def healthz() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    """Serve the API with uvicorn using the configured host and port."""

    configure_logging(settings.log_level)
    get_data_provider().seed_from_file()
    uvicorn.run(
        "survey_engine.API.server:app",
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

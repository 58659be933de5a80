from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rag_agent.config import Config
from rag_agent.routers.sync_router import router as sync_router
from rag_agent.routers.vectors_router import router as vectors_router
from rag_agent.services.initializers import Initializer

logger = logging.getLogger(__name__)


def create_app(config: Config | None = None) -> FastAPI:
    cfg = config or Config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.initializer.tracker_store()
        yield

    app = FastAPI(title="RAG Agent API", lifespan=lifespan)

    app.state.config = cfg
    app.state.initializer = Initializer(cfg)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(sync_router)
    app.include_router(vectors_router)

    return app

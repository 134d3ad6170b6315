from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import ManufacturingError
from app.core.logging_config import configure_logging
from app.db.base import Base
from app.db.session import engine

# Register models
from app.db import models  # noqa: F401

from services.inventory.api import router as inventory_router
from services.manufacturing.api import router as manufacturing_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Manufacturing Engine")


@app.exception_handler(ManufacturingError)
async def _manufacturing_error(request: Request, exc: ManufacturingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Validation error", "details": jsonable_encoder(exc.errors())},
    )


@app.on_event("startup")
async def _startup():
    # Dev-friendly schema creation (migrations are available for real upgrades)
    Base.metadata.create_all(bind=engine)


app.include_router(inventory_router)
app.include_router(manufacturing_router)


@app.get("/health")
def health():
    return {"ok": True}

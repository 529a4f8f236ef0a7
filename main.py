# -*- coding: utf-8 -*-
"""
FastAPI application for lesson scheduling and monthly billing.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lessonbook.config import config
from lessonbook.database import Base, engine
from lessonbook.errors import LessonbookError
from lessonbook.models import invoice, lesson, user  # noqa: F401
from lessonbook.routes import invoices, lessons

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    filename=config.LOG_FILE
)
logger = logging.getLogger(__name__)

# Creates the tables if they are missing
try:
    Base.metadata.create_all(bind=engine)
except Exception as e:
    logger.error(f"Error creating tables: {e}")

docs_enabled = config.ENVIRONMENT != "production"

app = FastAPI(
    title="Lessonbook API",
    description="Lesson scheduling between teachers and students, and monthly invoicing",
    version="1.0.0",
    docs_url="/docs" if docs_enabled else None,
    redoc_url="/redoc" if docs_enabled else None,
    openapi_url="/openapi.json" if docs_enabled else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:5173", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LessonbookError)
async def lessonbook_error_handler(request: Request, exc: LessonbookError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(lessons.router)
app.include_router(invoices.router)


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Lessonbook API",
        "documentation": "/docs",
        "endpoints": [
            {"lessons": "/api/v1/lessons"},
            {"invoices": "/api/v1/invoices"},
        ]
    }

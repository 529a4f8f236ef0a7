# -*- coding: utf-8 -*-
"""
Application settings read from environment variables (and .env).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _split_list(raw):
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def _database_url():
    url = os.environ.get("DATABASE_URL", "sqlite:///./lessonbook.db")
    # Render/Heroku still hand out the old scheme
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    DATABASE_URL = _database_url()
    ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 8))

    BILLABLE_STATUSES = _split_list(os.environ.get("BILLABLE_STATUSES", "completed"))
    INVOICE_DUE_DAY = int(os.environ.get("INVOICE_DUE_DAY", 15))

    LESSON_MIN_DURATION = int(os.environ.get("LESSON_MIN_DURATION", 15))
    LESSON_MAX_DURATION = int(os.environ.get("LESSON_MAX_DURATION", 240))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FILE = os.environ.get("LOG_FILE")


config = Config()

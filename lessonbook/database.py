# -*- coding: utf-8 -*-
"""
SQLAlchemy database wiring for the API and the billing CLI.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from lessonbook.config import config

connect_args = {}
if config.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    config.DATABASE_URL,
    connect_args=connect_args,
    # pool_pre_ping: checks the connection is alive before handing it out
    pool_pre_ping=True,
    pool_recycle=3600
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Used with Depends in the routers
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

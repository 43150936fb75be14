from __future__ import annotations
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def build_engine(database_url: str) -> Engine:
	connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
	kwargs = {}
	# In-memory SQLite must share one connection across threads or every
	# checkout sees an empty database
	if database_url in ("sqlite://", "sqlite:///:memory:"):
		kwargs["poolclass"] = StaticPool
	return create_engine(database_url, connect_args=connect_args, future=True, **kwargs)


def build_sessionmaker(engine: Engine) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def init_schema(engine: Engine) -> None:
	# models must be imported so their tables register on Base.metadata
	from . import models  # noqa: F401
	Base.metadata.create_all(bind=engine)

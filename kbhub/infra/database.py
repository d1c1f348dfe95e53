"""Database session management for the tenant settings store."""

from contextlib import contextmanager
from typing import Dict, Generator, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from kbhub.infra.config import config

# Engines are created on first use so importing this module never connects
_engines: Dict[str, Engine] = {}
_session_factories: Dict[str, sessionmaker] = {}


def get_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or config.DATABASE_URL
    engine = _engines.get(url)
    if engine is None:
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections after 1 hour
            echo=config.DEBUG,
        )
        _engines[url] = engine
    return engine


def get_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    url = database_url or config.DATABASE_URL
    factory = _session_factories.get(url)
    if factory is None:
        factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(url))
        _session_factories[url] = factory
    return factory


@contextmanager
def get_db_session(tenant_id: Optional[str] = None, database_url: Optional[str] = None) -> Generator[Session, None, None]:
    """
    Get a database session, optionally scoped to a tenant.

    On PostgreSQL sets app.current_tenant_id for row level security.
    """
    session = get_session_factory(database_url)()
    try:
        if tenant_id and session.get_bind().dialect.name == "postgresql":
            session.execute(
                text("SELECT set_config('app.current_tenant_id', :tenant_id, false)"),
                {"tenant_id": tenant_id},
            )
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Close every pooled connection."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_factories.clear()

from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the engine for the configured database URL"""
    url = make_url(database_url)
    kwargs = {'echo': echo}
    if url.get_backend_name() == 'sqlite':
        kwargs['connect_args'] = {'check_same_thread': False}
        if not url.database or url.database == ':memory:':
            # Single shared connection so every session sees the same in-memory DB
            kwargs['poolclass'] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables"""
    from . import models  # noqa: F401  (registers tables on Base.metadata)
    Base.metadata.create_all(bind=engine)
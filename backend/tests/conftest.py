"""
Shared fixtures: a file-backed SQLite database per test.

A file (not :memory:) lets several sessions see the same committed data,
which the concurrency tests rely on.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from neuroshop.database import Base, build_engine
from neuroshop.models import db_models  # noqa: F401  registers tables on Base


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'neuroshop_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()

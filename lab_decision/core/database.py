"""
Database connection and session management for the Lab Decision Engine
"""

from contextlib import contextmanager
from sqlalchemy import create_engine, text, inspect
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Iterator

from .config import settings
from .exceptions import StorageError


def create_database_engine(database_url: str = None, echo: bool = None):
    """Create database engine based on configuration"""

    database_url = database_url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    # Special handling for SQLite
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )
    else:
        # PostgreSQL or other databases
        engine = create_engine(
            database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            echo=echo
        )

    return engine


# Create engine instance
engine = create_database_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base
Base = declarative_base()


def create_tables(bind=None):
    """Create all tables in the database"""
    # Importing the models registers them on Base.metadata
    from .. import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=bind or engine)
    except Exception as e:
        raise StorageError(f"Failed to create tables: {str(e)}")


def drop_tables(bind=None):
    """Drop all tables from the database (use with caution)"""
    try:
        Base.metadata.drop_all(bind=bind or engine)
    except Exception as e:
        raise StorageError(f"Failed to drop tables: {str(e)}")


class DatabaseManager:
    """Database management utilities"""

    def __init__(self, session_factory: sessionmaker = None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Session scope that commits on success and rolls back on error"""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        """Test database connection"""
        try:
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def get_table_names(self) -> list:
        """Get list of all table names"""
        try:
            return inspect(self.session_factory.kw["bind"]).get_table_names()
        except Exception as e:
            raise StorageError(f"Failed to get table names: {str(e)}")


# Initialize database manager
db_manager = DatabaseManager()

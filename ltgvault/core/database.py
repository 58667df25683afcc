"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (StaticPool for in-memory SQLite)
- Table definitions for accounts, credentials, usage and resumes
"""
from typing import Optional
from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, ForeignKey, text
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
import os

from ltgvault.core.config import settings

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Drop the current engine (tests swap databases between sessions)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Commits on clean exit, rolls back on any exception.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored timestamp to an aware UTC datetime.

    SQLite hands back naive datetimes; every value we write is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Accounts: one row per customer, keyed by a uuid string
accounts = Table(
    'accounts',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('email', String(320), nullable=False, unique=True),
    Column('subscribed_postup', Boolean, nullable=False, default=False),
    Column('subscribed_threadgen', Boolean, nullable=False, default=False),
    Column('subscribed_chaptergen', Boolean, nullable=False, default=False),
    Column('subscribed_resumebuilder', Boolean, nullable=False, default=False),
    Column('stripe_customer_id', String(100), nullable=True, unique=True),
    Column('subscription_status', String(20), nullable=False, default='active'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('idx_accounts_created_at', 'created_at'),
)

# API keys: plaintext is never stored, only its SHA-256 digest
api_keys = Table(
    'api_keys',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(64), ForeignKey('accounts.id'), nullable=False),
    Column('key_hash', String(64), nullable=False, unique=True),
    Column('key_prefix', String(16), nullable=False),
    Column('last_four', String(4), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('last_used_at', DateTime(timezone=True), nullable=True),
    Column('revoked_at', DateTime(timezone=True), nullable=True),
    Index('idx_api_keys_account', 'account_id'),
    # At most one active key per account
    Index(
        'uq_api_keys_one_active',
        'account_id',
        unique=True,
        postgresql_where=text('revoked_at IS NULL'),
        sqlite_where=text('revoked_at IS NULL'),
    ),
)

# Usage events: insert-only ledger, counts are derived from rows
usage_events = Table(
    'usage_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(64), ForeignKey('accounts.id'), nullable=False),
    Column('feature', String(32), nullable=False),
    Column('action', String(64), nullable=False),
    Column('occurred_at', DateTime(timezone=True), nullable=False),
    Column('metadata', JSON, nullable=True),
    # Composite index for quota queries: (account_id, feature, occurred_at)
    Index('idx_usage_events_account_feature_occurred', 'account_id', 'feature', 'occurred_at'),
    Index('idx_usage_events_account_occurred', 'account_id', 'occurred_at'),
)

# Request log: admitted metered requests, read only by the rate limiter
request_log = Table(
    'request_log',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(64), ForeignKey('accounts.id'), nullable=False),
    Column('path', String(200), nullable=True),
    Column('occurred_at', DateTime(timezone=True), nullable=False),
    Index('idx_request_log_account_occurred', 'account_id', 'occurred_at'),
)

# Resume Builder resources
resumes = Table(
    'resumes',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('account_id', String(64), ForeignKey('accounts.id'), nullable=False),
    Column('title', Text, nullable=False),
    Column('template', String(32), nullable=False),
    Column('content', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('idx_resumes_account_created', 'account_id', 'created_at'),
)

job_applications = Table(
    'job_applications',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('account_id', String(64), ForeignKey('accounts.id'), nullable=False),
    Column('company', Text, nullable=False),
    Column('role', Text, nullable=False),
    Column('status', String(32), nullable=False, default='applied'),
    Column('notes', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=True),
    Index('idx_job_applications_account', 'account_id'),
)

cover_letters = Table(
    'cover_letters',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('account_id', String(64), ForeignKey('accounts.id'), nullable=False),
    Column('resume_id', String(64), ForeignKey('resumes.id', ondelete='SET NULL'), nullable=True),
    Column('job_title', Text, nullable=False, default=''),
    Column('company', Text, nullable=False, default=''),
    Column('job_description', Text, nullable=False, default=''),
    Column('content', Text, nullable=False, default=''),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('idx_cover_letters_account_updated', 'account_id', 'updated_at'),
)

# Billing events (webhook idempotency)
billing_events = Table(
    'billing_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('stripe_event_id', String(100), nullable=False, unique=True),
    Column('event_type', String(100), nullable=False),
    Column('received_at', DateTime(timezone=True), nullable=False),
    Column('payload_hash', String(64), nullable=False),
    Column('processed', Boolean, nullable=False, default=False),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Column('error', Text, nullable=True),
    Index('idx_billing_events_received_at', 'received_at'),
)

REQUIRED_TABLES = [table.name for table in metadata.sorted_tables]

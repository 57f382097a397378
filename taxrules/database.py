"""Database connection and session management."""

import ssl
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from taxrules.config import settings


def _make_permissive_ssl_context():
    """SSL context for managed Postgres hosts whose chains fail local verification."""
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _ssl_for_mode(mode: str, insecure: bool):
    """Map a libpq sslmode to asyncpg's ``ssl`` connect argument."""
    mode = mode.lower()
    if mode in ("disable", "false", "0"):
        return False
    if insecure:
        return _make_permissive_ssl_context()
    if mode == "verify-full":
        return ssl.create_default_context()
    if mode == "verify-ca":
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        return ctx
    if mode in ("true", "1"):
        return "require"
    # allow / prefer / require are understood by asyncpg as-is
    return mode


def get_engine_url_and_connect_args(
    database_url: str, insecure_ssl: bool = False
) -> tuple[str, dict]:
    """Strip sslmode from URL (asyncpg doesn't accept it) and pass SSL via connect_args.

    Certificate checks are only switched off when ``insecure_ssl`` is set.
    """
    url = database_url
    connect_args = {}
    if "sslmode=" in url or "ssl=" in url:
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        modes = query.pop("sslmode", None) or query.pop("ssl", None)
        query.pop("ssl", None)
        new_query = urlencode(query, doseq=True)
        url = urlunparse(parsed._replace(query=new_query))
        if modes:
            connect_args["ssl"] = _ssl_for_mode(modes[-1], insecure_ssl)
    return url, connect_args


_db_url, _connect_args = get_engine_url_and_connect_args(
    settings.database_url, settings.database_ssl_insecure
)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


engine = create_async_engine(
    _db_url,
    echo=settings.log_level == "DEBUG",
    connect_args=_connect_args,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for database sessions.

    One session per request: everything written during the request is
    committed together, or rolled back together if the handler raises.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

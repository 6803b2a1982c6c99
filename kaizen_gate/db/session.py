import asyncio
import base64
import logging
import os
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from kaizen_gate.core.config import Settings
from kaizen_gate.core.errors import StoreUnavailableError

logger = logging.getLogger("kaizen.db")

T = TypeVar("T")


def build_ssl_context(config: Settings) -> Optional[ssl.SSLContext]:
    """
    TLS context for the MySQL link. The CA comes from MYSQL_SSL_CA_BASE64 when set,
    otherwise from MYSQL_SSL_CA_PATH if that file exists.
    """
    ca_data = None
    if (config.MYSQL_SSL_CA_BASE64 or "").strip():
        ca_data = base64.b64decode(config.MYSQL_SSL_CA_BASE64.strip()).decode("utf-8")
    elif config.MYSQL_SSL_CA_PATH and os.path.exists(config.MYSQL_SSL_CA_PATH.strip()):
        with open(config.MYSQL_SSL_CA_PATH.strip(), encoding="utf-8") as fh:
            ca_data = fh.read()

    if ca_data is None and not config.MYSQL_SSL_REJECT_UNAUTHORIZED:
        return None

    context = ssl.create_default_context(cadata=ca_data)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    if not config.MYSQL_SSL_REJECT_UNAUTHORIZED:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class Database:
    """
    Handle over the credential store: one bounded connection pool plus a session factory.

    Constructed once by each service's composition root and passed down; nothing in
    the package holds a module-level engine.
    """

    def __init__(self, engine: AsyncEngine, query_timeout: float = 15.0):
        self.engine = engine
        self.query_timeout = query_timeout
        self._sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_settings(cls, config: Settings) -> "Database":
        # - pool_size / max_overflow: bounded pool shared by all requests
        # - pool_timeout: how long a request waits to check out a connection
        # - pool_pre_ping: drop connections the server closed behind our back
        # - pool_recycle: stay under MySQL's wait_timeout
        url = make_url(config.DATABASE_URL)
        kwargs = {"echo": config.SQLALCHEMY_ECHO, "pool_pre_ping": True}
        if url.get_backend_name() == "mysql":
            connect_args = {"connect_timeout": config.DB_CONNECT_TIMEOUT_SECONDS}
            ssl_context = build_ssl_context(config)
            if ssl_context is not None:
                connect_args["ssl"] = ssl_context
            kwargs.update(
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_timeout=config.DB_POOL_TIMEOUT_SECONDS,
                pool_recycle=3600,
                connect_args=connect_args,
            )
        engine = create_async_engine(url, **kwargs)
        logger.info(f"Database pool configured for {url.render_as_string(hide_password=True)}")
        return cls(engine, query_timeout=config.DB_QUERY_TIMEOUT_SECONDS)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Check out a session; it is closed (and rolled back if uncommitted) on every exit path."""
        async with self._sessionmaker() as session:
            yield session

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await a store operation under the query timeout. A timeout surfaces as
        StoreUnavailableError so callers fail closed instead of hanging.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.query_timeout)
        except asyncio.TimeoutError as exc:
            logger.error(f"Store operation exceeded {self.query_timeout}s")
            raise StoreUnavailableError("store timeout") from exc

    async def ping(self) -> bool:
        """
        Verify database connectivity. Used by health checks.
        """
        try:
            async with self.engine.connect() as conn:
                await asyncio.wait_for(conn.execute(text("SELECT 1")), timeout=self.query_timeout)
            return True
        except Exception as exc:
            logger.warning(f"Database ping failed: {exc.__class__.__name__}")
            return False

    async def create_all(self) -> None:
        from kaizen_gate.db.base import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

"""Connection Pool Manager for both replicated databases"""

import hashlib
import threading
from logging import getLogger

import mysql.connector.pooling
import psycopg2
import psycopg2.pool

from .config import DatabaseSettings

logger = getLogger(__name__)


class MysqlConnectionPool:
    def __init__(self, pool_name: str, pool_size: int, settings: DatabaseSettings):
        self.pool = mysql.connector.pooling.MySQLConnectionPool(
            pool_name=pool_name,
            pool_size=pool_size,
            pool_reset_session=True,
            **settings.get_connection_config(autocommit=True),
        )

    def acquire(self):
        return self.pool.get_connection()

    def release(self, connection):
        connection.close()  # Returns connection to pool

    def close(self):
        pass


class PostgresConnectionPool:
    def __init__(self, pool_name: str, pool_size: int, settings: DatabaseSettings):
        self.pool_name = pool_name
        self.pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=1,
            maxconn=pool_size,
            **settings.get_connection_config(),
        )

    def acquire(self):
        connection = self.pool.getconn()
        connection.autocommit = True
        return connection

    def release(self, connection):
        self.pool.putconn(connection)

    def close(self):
        self.pool.closeall()


POOL_CLASSES = {
    'mysql': MysqlConnectionPool,
    'postgresql': PostgresConnectionPool,
}

POOL_ERRORS = (mysql.connector.Error, psycopg2.Error)


class ConnectionPoolManager:
    """Singleton connection pool manager"""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._pools = {}
            self._initialized = True

    def _generate_short_pool_name(self, pool_key: str, user: str) -> str:
        """
        Generate shortened pool name.

        MySQL connector limits pool names to ~64 characters. This method creates
        a deterministic short name while keeping the full pool_key for internal
        dictionary lookups.
        """
        hash_digest = hashlib.sha256(pool_key.encode("utf-8")).hexdigest()[:8]
        safe_user = user[:16] if len(user) > 16 else user
        return f"pool_{safe_user}_{hash_digest}"

    def get_or_create_pool(self, settings: DatabaseSettings):
        pool_key = (
            f"{settings.adapter}:{settings.host}:{settings.port}:{settings.user}:"
            f"{settings.database}:{settings.pool_name}"
        )

        if pool_key not in self._pools:
            with self._lock:
                if pool_key not in self._pools:
                    try:
                        # MySQL max connections per user
                        actual_pool_size = min(settings.pool_size + settings.max_overflow, 32)
                        short_pool_name = self._generate_short_pool_name(pool_key, settings.user)
                        self._pools[pool_key] = POOL_CLASSES[settings.adapter](
                            short_pool_name, actual_pool_size, settings,
                        )
                        logger.info(
                            f"Created {settings.adapter} connection pool '{short_pool_name}' "
                            f"(key: '{pool_key}') with {actual_pool_size} connections"
                        )
                    except POOL_ERRORS as e:
                        logger.error(f"Failed to create connection pool '{pool_key}': {e}")
                        raise

        return self._pools[pool_key]

    def close_all_pools(self):
        with self._lock:
            for pool_name, pool in self._pools.items():
                try:
                    pool.close()
                    logger.info(f"Connection pool '{pool_name}' closed")
                except POOL_ERRORS as e:
                    logger.warning(f"Error closing pool '{pool_name}': {e}")
            self._pools.clear()


class PooledConnection:
    """Context manager for pooled connections"""

    def __init__(self, pool):
        self.pool = pool
        self.connection = None
        self.cursor = None

    def __enter__(self):
        try:
            self.connection = self.pool.acquire()
            self.cursor = self.connection.cursor()
            return self.connection, self.cursor
        except POOL_ERRORS as e:
            logger.error(f"Failed to get connection from pool: {e}")
            raise

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.cursor:
            self.cursor.close()
        if self.connection:
            self.pool.release(self.connection)

        if exc_type is not None:
            logger.error(f"Error in pooled connection: {exc_val}")


def get_pool_manager() -> ConnectionPoolManager:
    """Get the singleton connection pool manager"""
    return ConnectionPoolManager()

from contextlib import contextmanager
from logging import getLogger

from .config import DatabaseSettings
from .connection_pool import PooledConnection, get_pool_manager
from .extenders import get_extender_class
from .table_structure import TableStructure

logger = getLogger(__name__)


class DatabaseApi:
    """One replicated database (left or right side)"""

    def __init__(self, side: str, settings: DatabaseSettings):
        self.side = side
        self.settings = settings
        self.extender = get_extender_class(settings.adapter)(self)
        self.pool_manager = get_pool_manager()
        self.connection_pool = self.pool_manager.get_or_create_pool(settings)
        logger.info(
            f"DatabaseApi '{side}' initialized with {settings.adapter} database '{settings.database}' "
            f"using connection pool '{settings.pool_name}'"
        )

    @contextmanager
    def get_connection(self):
        """Get a connection from the pool with automatic cleanup"""
        with PooledConnection(self.connection_pool) as (connection, cursor):
            yield connection, cursor

    def quote_table(self, name):
        return self.extender.quote_table(name)

    def quote_identifier(self, name):
        return self.extender.quote_identifier(name)

    def execute(self, command, args=None):
        with self.get_connection() as (connection, cursor):
            logger.debug(f'[{self.side}] execute: {command}')
            if args:
                cursor.execute(command, args)
            else:
                cursor.execute(command)
            return cursor.rowcount

    def select_all(self, query, args=None) -> list[dict]:
        with self.get_connection() as (connection, cursor):
            if args:
                cursor.execute(query, args)
            else:
                cursor.execute(query)
            columns = [column[0] for column in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def select_one(self, query, args=None) -> dict | None:
        rows = self.select_all(query, args)
        return rows[0] if rows else None

    def get_tables(self) -> list[str]:
        return self.extender.get_tables()

    def table_exists(self, table_name) -> bool:
        return table_name in self.get_tables()

    def get_table_structure(self, table_name) -> TableStructure:
        return self.extender.get_table_structure(table_name)

    def get_columns(self, table_name) -> list[str]:
        return [f.name for f in self.get_table_structure(table_name).fields]

    def get_primary_keys(self, table_name) -> list[str]:
        return self.get_table_structure(table_name).primary_keys

    def create_table(self, table_name, columns: list[str], options=None):
        if options is None:
            options = self.extender.create_table_options
        columns_sql = ',\n    '.join(columns)
        query = f'CREATE TABLE {self.quote_table(table_name)} (\n    {columns_sql}\n){options}'
        logger.info(f'[{self.side}] creating table {table_name}')
        self.execute(query)

    def drop_table(self, table_name):
        logger.info(f'[{self.side}] dropping table {table_name}')
        self.execute(f'DROP TABLE {self.quote_table(table_name)}')

    def insert_record(self, table_name, record: dict):
        columns = ', '.join(self.quote_identifier(name) for name in record)
        placeholders = ', '.join(['%s'] * len(record))
        self.execute(
            f'INSERT INTO {self.quote_table(table_name)} ({columns}) VALUES ({placeholders})',
            tuple(record.values()),
        )

    def delete_record(self, table_name, key: dict):
        where = ' AND '.join(f'{self.quote_identifier(name)} = %s' for name in key)
        return self.execute(
            f'DELETE FROM {self.quote_table(table_name)} WHERE {where}',
            tuple(key.values()),
        )

    def outdated_sequence_values(self, rep_prefix, table_name, increment, offset) -> dict:
        return self.extender.outdated_sequence_values(rep_prefix, table_name, increment, offset)

    def close(self):
        """Close method for compatibility - pool handles connection lifecycle"""
        logger.debug(f"DatabaseApi '{self.side}'.close() called - connection pool will handle cleanup")

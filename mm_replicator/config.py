"""
Multi-master Replicator Configuration Management

This module provides configuration classes and utilities for managing the replication
infrastructure settings including database connections, table selection and the
per-table replication options.

Classes:
    DatabaseSettings: connection configuration of one side (left or right)
    TableOptions: replication options of one table (sequence layout, sync behaviour)
    TableOptionsOverride: table pattern specific option overrides
    Settings: Main configuration class that orchestrates all settings

Key Features:
    - YAML-based configuration loading
    - Environment variable overrides for connection settings
    - Table filtering with pattern matching
    - Type validation and error handling
"""

import fnmatch
import os
from dataclasses import dataclass, field, fields, replace

import yaml


SIDES = ('left', 'right')
SUPPORTED_ADAPTERS = ('mysql', 'postgresql')
DEFAULT_PORTS = {'mysql': 3306, 'postgresql': 5432}


def stype(obj):
    """Get the simple type name of an object.

    Example:
        >>> stype([1, 2, 3])
        'list'
    """
    return type(obj).__name__


@dataclass
class DatabaseSettings:
    """Connection configuration of one replicated database.

    Attributes:
        adapter: database engine, "mysql" or "postgresql"
        host: server hostname or IP address
        port: server port (engine default when 0)
        user: username for authentication
        password: password for authentication
        database: database to connect to
        schema: PostgreSQL schema holding the replicated tables (ignored for MySQL)
        pool_size: Base number of connections in pool (default: 2)
        max_overflow: Maximum additional connections beyond pool_size (default: 2)
        pool_name: Identifier for connection pool (default: "default")
        charset: Character set for connection (MySQL only, optional)
    """
    adapter: str = "postgresql"
    host: str = "localhost"
    port: int = 0
    user: str = "root"
    password: str = ""
    database: str = ""
    schema: str = "public"
    pool_size: int = 2
    max_overflow: int = 2
    pool_name: str = "default"
    charset: str = None

    def __post_init__(self):
        if not self.port and self.adapter in DEFAULT_PORTS:
            self.port = DEFAULT_PORTS[self.adapter]

    def validate(self):
        if self.adapter not in SUPPORTED_ADAPTERS:
            raise ValueError(
                f"database adapter should be one of {SUPPORTED_ADAPTERS} and not {self.adapter}"
            )

        if not isinstance(self.host, str):
            raise ValueError(f"database host should be string and not {stype(self.host)}")

        if not isinstance(self.port, int):
            raise ValueError(f"database port should be int and not {stype(self.port)}")

        if not isinstance(self.user, str):
            raise ValueError(f"database user should be string and not {stype(self.user)}")

        if not isinstance(self.password, str):
            raise ValueError(
                f"database password should be string and not {stype(self.password)}"
            )

        if not isinstance(self.database, str) or not self.database:
            raise ValueError("database name should be a non-empty string")

        if not isinstance(self.schema, str):
            raise ValueError(f"database schema should be string and not {stype(self.schema)}")

        if not isinstance(self.pool_size, int) or self.pool_size < 1:
            raise ValueError(
                f"database pool_size should be positive integer and not {stype(self.pool_size)}"
            )

        if not isinstance(self.max_overflow, int) or self.max_overflow < 0:
            raise ValueError(
                f"database max_overflow should be non-negative integer and not {stype(self.max_overflow)}"
            )

        if self.charset is not None and not isinstance(self.charset, str):
            raise ValueError(
                f"database charset should be string or None and not {stype(self.charset)}"
            )

    def apply_env_overrides(self, side: str):
        """Override connection values with <SIDE>_DB_<FIELD> environment variables"""
        prefix = f'{side.upper()}_DB_'
        for name in ('host', 'user', 'password', 'database'):
            value = os.environ.get(prefix + name.upper())
            if value is not None:
                setattr(self, name, value)
        port = os.environ.get(prefix + 'PORT')
        if port is not None:
            self.port = int(port)

    def get_connection_config(self, autocommit=True):
        """Build the keyword arguments of the engine's connect call"""
        config = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
        }
        if self.adapter == 'mysql':
            config["autocommit"] = autocommit
            if self.charset is not None:
                config["charset"] = self.charset
        return config


@dataclass
class TableOptions:
    """Replication options of one table pair.

    sequence_increment of None means "use the replica count".
    """
    sequence_increment: int = None
    left_sequence_offset: int = 0
    right_sequence_offset: int = 1
    adjust_sequences: bool = True
    sequence_adjustment_buffer: int = 0
    initial_sync: bool = True
    exclude_rr_activity: bool = True
    primary_key_names: list = None
    rep_prefix: str = 'rr'

    def sequence_offset(self, side: str) -> int:
        return self.left_sequence_offset if side == 'left' else self.right_sequence_offset

    def validate(self):
        if not isinstance(self.sequence_increment, int) or self.sequence_increment < 1:
            raise ValueError(
                f"sequence_increment should be positive integer and not {self.sequence_increment}"
            )
        for side in SIDES:
            offset = self.sequence_offset(side)
            if not isinstance(offset, int) or not 0 <= offset < self.sequence_increment:
                raise ValueError(
                    f"{side}_sequence_offset should be in [0, {self.sequence_increment}) and not {offset}"
                )
        if self.left_sequence_offset == self.right_sequence_offset:
            raise ValueError("left_sequence_offset and right_sequence_offset must differ")
        if not isinstance(self.sequence_adjustment_buffer, int) or self.sequence_adjustment_buffer < 0:
            raise ValueError("sequence_adjustment_buffer should be non-negative integer")
        if self.primary_key_names is not None:
            if not isinstance(self.primary_key_names, list) or not self.primary_key_names:
                raise ValueError("primary_key_names should be a non-empty list")


TABLE_OPTION_NAMES = {f.name for f in fields(TableOptions)} - {'rep_prefix'}


@dataclass
class TableOptionsOverride:
    tables: str | list = "*"
    options: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TablePair:
    left: str
    right: str

    def __getitem__(self, side):
        return getattr(self, side)

    def __str__(self):
        if self.left == self.right:
            return self.left
        return f'{self.left}, {self.right}'


class Settings:
    DEFAULT_LOG_LEVEL = "info"
    DEFAULT_REP_PREFIX = "rr"
    DEFAULT_REPLICA_COUNT = 2

    def __init__(self):
        self.left = DatabaseSettings()
        self.right = DatabaseSettings()
        self.rep_prefix = Settings.DEFAULT_REP_PREFIX
        self.replica_count = Settings.DEFAULT_REPLICA_COUNT
        self.tables: list[str] = []
        self.excluded_tables: list[str] = []
        self.table_options: list[TableOptionsOverride] = []
        self.default_options = TableOptions()
        self.settings_file = ""
        self.log_level = Settings.DEFAULT_LOG_LEVEL

    def load(self, settings_file):
        with open(settings_file, "r") as f:
            data = yaml.safe_load(f.read())

        self.settings_file = settings_file
        self.left = DatabaseSettings(**data.pop("left"))
        self.right = DatabaseSettings(**data.pop("right"))
        self.left.apply_env_overrides('left')
        self.right.apply_env_overrides('right')
        self.rep_prefix = data.pop("rep_prefix", Settings.DEFAULT_REP_PREFIX)
        self.replica_count = data.pop("replica_count", Settings.DEFAULT_REPLICA_COUNT)
        self.log_level = data.pop("log_level", Settings.DEFAULT_LOG_LEVEL)

        tables = data.pop("tables", [])
        if isinstance(tables, str):
            tables = [tables]
        for table_spec in tables:
            self.include_tables(table_spec)

        excluded = data.pop("exclude_tables", [])
        if isinstance(excluded, str):
            excluded = [excluded]
        for pattern in excluded:
            self.exclude_tables(pattern)

        default_options = data.pop("options", {})
        self.check_option_names(default_options)
        self.default_options = replace(self.default_options, **default_options)

        for override in data.pop("table_options", []):
            override = dict(override)
            table_pattern = override.pop("tables", "*")
            self.check_option_names(override)
            self.table_options.append(TableOptionsOverride(tables=table_pattern, options=override))

        if data:
            raise Exception(f"Unsupported config options: {list(data.keys())}")
        self.validate()

    @staticmethod
    def check_option_names(options: dict):
        unknown = set(options) - TABLE_OPTION_NAMES
        if unknown:
            raise Exception(f"Unsupported table options: {sorted(unknown)}")

    @classmethod
    def is_pattern_matches(cls, substr, pattern):
        if not pattern or pattern == "*":
            return True
        if isinstance(pattern, str):
            return fnmatch.fnmatch(substr, pattern)
        if isinstance(pattern, list):
            for allowed_pattern in pattern:
                if fnmatch.fnmatch(substr, allowed_pattern):
                    return True
            return False
        raise ValueError()

    def include_tables(self, table_spec: str, **options):
        """Adds a table specification: "name", "left_name, right_name" or a pattern.

        Keyword arguments become option overrides for the tables matched by the
        spec, under the left as well as the right name.
        """
        self.check_option_names(options)
        self.tables.append(table_spec)
        if options:
            patterns = list(dict.fromkeys(part.strip() for part in table_spec.split(',')))
            self.table_options.append(TableOptionsOverride(tables=patterns, options=options))

    def exclude_tables(self, pattern: str):
        if pattern not in self.excluded_tables:
            self.excluded_tables.append(pattern)

    def is_table_excluded(self, table_name):
        for pattern in self.excluded_tables:
            if fnmatch.fnmatch(table_name, pattern):
                return True
        return False

    def resolve_table_pairs(self, left_tables) -> list[TablePair]:
        """Turns the table specifications into table pairs.

        Patterns are expanded against the tables of the left database. Excluded
        tables are dropped, every left table is paired at most once.
        """
        pairs = []
        seen = set()
        for table_spec in self.tables:
            parts = [part.strip() for part in table_spec.split(',')]
            if len(parts) == 2:
                candidates = [TablePair(parts[0], parts[1])]
            elif len(parts) == 1 and any(ch in parts[0] for ch in '*?['):
                candidates = [
                    TablePair(table, table) for table in sorted(left_tables)
                    if fnmatch.fnmatch(table, parts[0])
                ]
            elif len(parts) == 1:
                candidates = [TablePair(parts[0], parts[0])]
            else:
                raise ValueError(f"invalid table specification '{table_spec}'")

            for pair in candidates:
                if self.is_table_excluded(pair.left) or pair.left in seen:
                    continue
                seen.add(pair.left)
                pairs.append(pair)
        return pairs

    def options(self, table=None) -> TableOptions:
        """Global options, or the options of the given (left) table if provided"""
        if table is not None:
            return self.options_for_table(table)
        return self._with_defaults(self.default_options)

    def options_for_table(self, table_name) -> TableOptions:
        options = self.default_options
        for override in self.table_options:
            if self.is_pattern_matches(table_name, override.tables):
                options = replace(options, **override.options)
        return self._with_defaults(options)

    def _with_defaults(self, options: TableOptions) -> TableOptions:
        options = replace(options, rep_prefix=self.rep_prefix)
        if options.sequence_increment is None:
            options = replace(options, sequence_increment=self.replica_count)
        return options

    def validate_log_level(self):
        if self.log_level not in ["critical", "error", "warning", "info", "debug"]:
            raise ValueError(f"wrong log level {self.log_level}")

    def validate(self):
        self.left.validate()
        self.right.validate()
        self.validate_log_level()
        if not isinstance(self.rep_prefix, str) or not self.rep_prefix.isidentifier():
            raise ValueError(f"rep_prefix should be a plain identifier and not {self.rep_prefix}")
        if not isinstance(self.replica_count, int) or self.replica_count < 2:
            raise ValueError(f"replica_count should be an integer >= 2, not {self.replica_count}")
        self.options().validate()
        for override in self.table_options:
            self._with_defaults(replace(self.default_options, **override.options)).validate()

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..key_encoder import key_parts, quote_literal
from ..table_structure import TableStructure


class ChangeType:
    INSERT = 'I'
    UPDATE = 'U'
    DELETE = 'D'


@dataclass
class SequenceValue:
    name: str
    increment: int
    value: int
    next_value: int
    column_type: str = 'bigint'


@dataclass
class TriggerParams:
    rep_prefix: str
    table: str
    keys: list[str]
    log_table: str
    activity_table: str | None = None


class ConnectionExtender(ABC):
    """Engine specific capabilities of one database handle.

    Holds the SQL dialect of capture triggers, the sequence layout and the DDL
    types of the infrastructure tables.
    """

    adapter = None

    def __init__(self, db):
        self.db = db

    # identifiers

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def quote_table(self, name: str) -> str:
        return self.quote_identifier(name)

    quote_literal = staticmethod(quote_literal)

    def concat(self, parts: list[str]) -> str:
        return ' || '.join(parts)

    def key_clause(self, keys: list[str], row_reference: str) -> str:
        return self.concat(key_parts(keys, row_reference, self.quote_identifier))

    # infrastructure DDL

    auto_key_column_type = None
    string_type = 'VARCHAR(2000)'
    change_type_type = 'VARCHAR(1)'
    timestamp_type = 'TIMESTAMP'
    boolean_type = 'BOOLEAN'
    create_table_options = ''

    def auto_key_column(self, name='id') -> str:
        return f'{self.quote_identifier(name)} {self.auto_key_column_type}'

    # introspection

    @abstractmethod
    def get_tables(self) -> list[str]:
        pass

    @abstractmethod
    def get_table_structure(self, table: str) -> TableStructure:
        pass

    # capture triggers

    def capture_trigger_name(self, rep_prefix: str, table: str) -> str:
        return f'{rep_prefix}_{table}'

    @abstractmethod
    def trigger_exists(self, rep_prefix: str, table: str) -> bool:
        pass

    def any_trigger_exists(self, rep_prefix: str, table: str) -> bool:
        """True if any part of the capture trigger setup is present"""
        return self.trigger_exists(rep_prefix, table)

    @abstractmethod
    def create_replication_trigger(self, params: TriggerParams):
        pass

    @abstractmethod
    def drop_replication_trigger(self, rep_prefix: str, table: str):
        pass

    # sequences

    @abstractmethod
    def sequence_values(self, rep_prefix: str, table: str) -> dict[str, SequenceValue]:
        """Key generators of the table: column name => SequenceValue"""

    @abstractmethod
    def update_sequence(self, rep_prefix: str, table: str, column: str,
                        increment: int, offset: int, start: int):
        """Sets stride and residue of the column's generator; start is its next value"""

    @abstractmethod
    def clear_sequence_setup(self, rep_prefix: str, table: str):
        pass

    def sequence_setup_exists(self, rep_prefix: str, table: str) -> bool:
        return any(value.increment != 1 for value in self.sequence_values(rep_prefix, table).values())

    def outdated_sequence_values(self, rep_prefix: str, table: str, increment: int, offset: int) -> dict:
        result = {}
        for column, value in self.sequence_values(rep_prefix, table).items():
            if value.increment != increment or value.value % increment != offset:
                result[column] = value
        return result

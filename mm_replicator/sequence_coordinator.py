"""
Residue-class partitioning of auto generated key values.

Every side generates keys with the same stride (increment) but its own
residue (offset), so values generated independently on both sides never
collide: with increment 2 the left side hands out even and the right side
odd numbers.
"""

from logging import getLogger

from .config import SIDES, TablePair
from .errors import SchemaMismatchError
from .table_structure import is_integer_type

logger = getLogger(__name__)


def next_sequence_value(current: int, increment: int, offset: int) -> int:
    """Smallest value >= current with value % increment == offset"""
    if increment < 1:
        raise ValueError(f'sequence increment must be positive, got {increment}')
    if not 0 <= offset < increment:
        raise ValueError(f'sequence offset must be in [0, {increment}), got {offset}')
    return current + (offset - current) % increment


class SequenceCoordinator:

    def __init__(self, session):
        self.session = session

    def options(self, table):
        return self.session.configuration.options_for_table(table)

    def sequence_values(self, side, table):
        prefix = self.session.configuration.rep_prefix
        values = self.session.database(side).extender.sequence_values(prefix, table)
        for column, value in values.items():
            if not is_integer_type(value.column_type):
                raise SchemaMismatchError(
                    f'key generator of {side} table {table} feeds non integer column {column} ({value.column_type})'
                )
        return values

    def ensure_sequence_setup(self, table_pair: TablePair, increment, left_offset, right_offset):
        """Gives the key generators of both tables the stride increment and the side's offset.

        Generators only move forward: the next value of an adjusted generator
        becomes the smallest value in its residue class that is not below the
        highest next value of both sides (plus the configured adjustment
        buffer). Generators already using increment and offset are left alone.
        """
        table_options = self.options(table_pair.left)
        if not table_options.adjust_sequences:
            return

        offsets = {'left': left_offset, 'right': right_offset}
        values = {side: self.sequence_values(side, table_pair[side]) for side in SIDES}
        next_values = [v.next_value for side_values in values.values() for v in side_values.values()]
        if not next_values:
            logger.debug(f'table pair {table_pair} has no key generators')
            return
        floor = max(next_values) + table_options.sequence_adjustment_buffer

        prefix = self.session.configuration.rep_prefix
        for side in SIDES:
            table = table_pair[side]
            extender = self.session.database(side).extender
            for column, value in values[side].items():
                if value.increment == increment and value.next_value % increment == offsets[side]:
                    continue
                start = next_sequence_value(floor, increment, offsets[side])
                logger.info(
                    f'{side} table {table}.{column}: sequence increment {increment}, '
                    f'offset {offsets[side]}, next value {start}'
                )
                extender.update_sequence(prefix, table, column, increment, offsets[side], start)

    def outdated_sequence_values(self, side, table, increment, offset) -> dict:
        prefix = self.session.configuration.rep_prefix
        return self.session.database(side).outdated_sequence_values(prefix, table, increment, offset)

    def outdated_key_values(self, side, table, increment, offset) -> dict:
        """Stored generated keys outside the residue class: column => sorted values"""
        db = self.session.database(side)
        result = {}
        for column in self.sequence_values(side, table):
            quoted_column = db.quote_identifier(column)
            rows = db.select_all(
                f'SELECT {quoted_column} AS value FROM {db.quote_table(table)} '
                f'WHERE MOD({quoted_column}, %s) <> %s ORDER BY {quoted_column}',
                (increment, offset),
            )
            if rows:
                result[column] = [row['value'] for row in rows]
        return result

    def sequence_setup_exists(self, side, table) -> bool:
        prefix = self.session.configuration.rep_prefix
        return self.session.database(side).extender.sequence_setup_exists(prefix, table)

    def clear_sequence_setup(self, side, table):
        prefix = self.session.configuration.rep_prefix
        logger.info(f'clearing sequence setup of {side} table {table}')
        self.session.database(side).extender.clear_sequence_setup(prefix, table)

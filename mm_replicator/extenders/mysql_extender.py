from logging import getLogger

from ..table_structure import TableField, TableStructure
from .base import ChangeType, ConnectionExtender, SequenceValue, TriggerParams
from .registration import register_extender


logger = getLogger(__name__)


INSERT_TRIGGER = '''
CREATE TRIGGER {trigger_name} AFTER INSERT ON {table} FOR EACH ROW BEGIN
  {activity_check_begin}
    INSERT INTO {log_table}(change_table, change_key, change_type, change_time)
      VALUES({table_literal}, {new_key}, '{insert}', now());
  {activity_check_end}
END
'''

UPDATE_TRIGGER = '''
CREATE TRIGGER {trigger_name} AFTER UPDATE ON {table} FOR EACH ROW BEGIN
  {activity_check_begin}
    IF {new_key} <> {old_key} THEN
      INSERT INTO {log_table}(change_table, change_key, change_new_key, change_type, change_time)
        VALUES({table_literal}, {old_key}, {new_key}, '{update}', now());
    ELSE
      INSERT INTO {log_table}(change_table, change_key, change_type, change_time)
        VALUES({table_literal}, {new_key}, '{update}', now());
    END IF;
  {activity_check_end}
END
'''

DELETE_TRIGGER = '''
CREATE TRIGGER {trigger_name} AFTER DELETE ON {table} FOR EACH ROW BEGIN
  {activity_check_begin}
    INSERT INTO {log_table}(change_table, change_key, change_type, change_time)
      VALUES({table_literal}, {old_key}, '{delete}', now());
  {activity_check_end}
END
'''

# Rows inserted without an explicit key get current_value + increment
SEQUENCE_TRIGGER = '''
CREATE TRIGGER {trigger_name} BEFORE INSERT ON {table} FOR EACH ROW BEGIN
  IF IFNULL(NEW.{column}, 0) = 0 THEN
    UPDATE {sequence_table}
      SET `current_value` = LAST_INSERT_ID(`current_value` + `increment`)
      WHERE `name` = {table_literal};
    SET NEW.{column} = LAST_INSERT_ID();
  END IF;
END
'''

CAPTURE_EVENTS = (
    ('insert', INSERT_TRIGGER),
    ('update', UPDATE_TRIGGER),
    ('delete', DELETE_TRIGGER),
)


@register_extender('mysql')
class MysqlExtender(ConnectionExtender):
    adapter = 'mysql'
    auto_key_column_type = 'BIGINT NOT NULL AUTO_INCREMENT PRIMARY KEY'
    timestamp_type = 'TIMESTAMP NULL'
    create_table_options = ' ENGINE=InnoDB'

    def quote_identifier(self, name: str) -> str:
        return '`' + name.replace('`', '``') + '`'

    def concat(self, parts: list[str]) -> str:
        return f"concat({', '.join(parts)})"

    def get_tables(self) -> list[str]:
        rows = self.db.select_all('SHOW FULL TABLES')
        return [tuple(row.values())[0] for row in rows if tuple(row.values())[1] == 'BASE TABLE']

    def get_table_structure(self, table: str) -> TableStructure:
        structure = TableStructure(table_name=table)
        rows = self.db.select_all(
            '''
            SELECT column_name AS column_name, column_type AS column_type,
                   is_nullable AS is_nullable, extra AS extra
            FROM information_schema.columns
            WHERE table_schema = DATABASE() AND table_name = %s
            ORDER BY ordinal_position
            ''',
            (table,),
        )
        for row in rows:
            structure.fields.append(TableField(
                name=row['column_name'],
                field_type=row['column_type'],
                nullable=row['is_nullable'] == 'YES',
                auto_increment='auto_increment' in (row['extra'] or '').lower(),
            ))
        rows = self.db.select_all(
            '''
            SELECT column_name AS column_name
            FROM information_schema.key_column_usage
            WHERE table_schema = DATABASE() AND table_name = %s AND constraint_name = 'PRIMARY'
            ORDER BY ordinal_position
            ''',
            (table,),
        )
        structure.primary_keys = [row['column_name'] for row in rows]
        return structure

    def mysql_trigger_exists(self, trigger_name: str) -> bool:
        row = self.db.select_one(
            '''
            SELECT trigger_name AS trigger_name FROM information_schema.triggers
            WHERE trigger_schema = DATABASE() AND trigger_name = %s
            ''',
            (trigger_name,),
        )
        return row is not None

    # capture triggers

    def trigger_exists(self, rep_prefix: str, table: str) -> bool:
        trigger_name = self.capture_trigger_name(rep_prefix, table)
        return all(
            self.mysql_trigger_exists(f'{trigger_name}_{event}') for event, _ in CAPTURE_EVENTS
        )

    def any_trigger_exists(self, rep_prefix: str, table: str) -> bool:
        # an interrupted creation leaves only some of the three triggers
        trigger_name = self.capture_trigger_name(rep_prefix, table)
        return any(
            self.mysql_trigger_exists(f'{trigger_name}_{event}') for event, _ in CAPTURE_EVENTS
        )

    def create_replication_trigger(self, params: TriggerParams):
        # leftovers of an interrupted creation
        self.drop_replication_trigger(params.rep_prefix, params.table)
        trigger_name = self.capture_trigger_name(params.rep_prefix, params.table)
        activity_check_begin = activity_check_end = ''
        if params.activity_table:
            activity_check_begin = (
                f'IF NOT EXISTS (SELECT 1 FROM {self.quote_table(params.activity_table)} WHERE active) THEN'
            )
            activity_check_end = 'END IF;'
        for event, template in CAPTURE_EVENTS:
            self.db.execute(template.format(
                trigger_name=self.quote_identifier(f'{trigger_name}_{event}'),
                table=self.quote_table(params.table),
                log_table=self.quote_table(params.log_table),
                table_literal=self.quote_literal(params.table),
                old_key=self.key_clause(params.keys, 'OLD'),
                new_key=self.key_clause(params.keys, 'NEW'),
                activity_check_begin=activity_check_begin,
                activity_check_end=activity_check_end,
                insert=ChangeType.INSERT,
                update=ChangeType.UPDATE,
                delete=ChangeType.DELETE,
            ))

    def drop_replication_trigger(self, rep_prefix: str, table: str):
        trigger_name = self.capture_trigger_name(rep_prefix, table)
        for event, _ in CAPTURE_EVENTS:
            self.db.execute(f'DROP TRIGGER IF EXISTS {self.quote_identifier(f"{trigger_name}_{event}")}')

    # sequences
    #
    # auto_increment_increment / auto_increment_offset are server wide, so the
    # stride of every table is kept in <prefix>_sequences and applied by a
    # BEFORE INSERT trigger.

    def sequence_table_name(self, rep_prefix: str) -> str:
        return f'{rep_prefix}_sequences'

    def sequence_trigger_name(self, rep_prefix: str, table: str) -> str:
        return f'{rep_prefix}_{table}_sequence'

    def sequence_row(self, rep_prefix: str, table: str):
        sequence_table = self.sequence_table_name(rep_prefix)
        if not self.db.table_exists(sequence_table):
            return None
        return self.db.select_one(
            f'''
            SELECT `current_value`, `increment`, `offset`
            FROM {self.quote_table(sequence_table)} WHERE `name` = %s
            ''',
            (table,),
        )

    def ensure_sequence_table(self, rep_prefix: str):
        sequence_table = self.sequence_table_name(rep_prefix)
        if self.db.table_exists(sequence_table):
            return
        logger.info(f'creating sequence table {sequence_table}')
        # MyISAM: sequence rows must not stay locked by the inserting transaction
        self.db.create_table(sequence_table, [
            '`name` VARCHAR(255) NOT NULL PRIMARY KEY',
            '`current_value` BIGINT NOT NULL',
            '`increment` INT NOT NULL',
            '`offset` INT NOT NULL',
        ], options=' ENGINE=MyISAM')

    def sequence_values(self, rep_prefix: str, table: str) -> dict[str, SequenceValue]:
        structure = self.db.get_table_structure(table)
        auto_fields = structure.auto_increment_fields()
        if not auto_fields:
            return {}
        auto_field = auto_fields[0]
        column = auto_field.name

        row = self.sequence_row(rep_prefix, table)
        if row is not None:
            current_value = int(row['current_value'])
            increment = int(row['increment'])
            return {column: SequenceValue(
                name=self.sequence_trigger_name(rep_prefix, table),
                increment=increment,
                value=current_value,
                next_value=current_value + increment,
                column_type=auto_field.field_type,
            )}

        current_max = self.db.select_one(
            f'SELECT MAX({self.quote_identifier(column)}) AS current_max FROM {self.quote_table(table)}'
        )['current_max'] or 0
        auto_increment = self.db.select_one(
            '''
            SELECT auto_increment AS auto_increment FROM information_schema.tables
            WHERE table_schema = DATABASE() AND table_name = %s
            ''',
            (table,),
        )
        next_value = int(current_max) + 1
        if auto_increment and auto_increment['auto_increment']:
            next_value = max(next_value, int(auto_increment['auto_increment']))
        return {column: SequenceValue(
            name=table,
            increment=1,
            value=int(current_max),
            next_value=next_value,
            column_type=auto_field.field_type,
        )}

    def update_sequence(self, rep_prefix: str, table: str, column: str,
                        increment: int, offset: int, start: int):
        self.ensure_sequence_table(rep_prefix)
        sequence_table = self.quote_table(self.sequence_table_name(rep_prefix))
        current_value = start - increment
        row = self.sequence_row(rep_prefix, table)
        if row is None:
            self.db.execute(
                f'''
                INSERT INTO {sequence_table}(`name`, `current_value`, `increment`, `offset`)
                VALUES(%s, %s, %s, %s)
                ''',
                (table, current_value, increment, offset),
            )
        elif (int(row['current_value']), int(row['increment']), int(row['offset'])) != (current_value, increment, offset):
            self.db.execute(
                f'''
                UPDATE {sequence_table} SET `current_value` = %s, `increment` = %s, `offset` = %s
                WHERE `name` = %s
                ''',
                (current_value, increment, offset, table),
            )

        trigger_name = self.sequence_trigger_name(rep_prefix, table)
        if not self.mysql_trigger_exists(trigger_name):
            self.db.execute(SEQUENCE_TRIGGER.format(
                trigger_name=self.quote_identifier(trigger_name),
                table=self.quote_table(table),
                column=self.quote_identifier(column),
                sequence_table=sequence_table,
                table_literal=self.quote_literal(table),
            ))

    def clear_sequence_setup(self, rep_prefix: str, table: str):
        sequence_table = self.sequence_table_name(rep_prefix)
        if not self.db.table_exists(sequence_table):
            return
        trigger_name = self.sequence_trigger_name(rep_prefix, table)
        if self.mysql_trigger_exists(trigger_name):
            self.db.execute(f'DROP TRIGGER {self.quote_identifier(trigger_name)}')
        self.db.execute(f'DELETE FROM {self.quote_table(sequence_table)} WHERE `name` = %s', (table,))
        if self.db.select_one(f'SELECT `name` AS name FROM {self.quote_table(sequence_table)} LIMIT 1') is None:
            # no sequences left
            self.db.drop_table(sequence_table)

    def sequence_setup_exists(self, rep_prefix: str, table: str) -> bool:
        return self.sequence_row(rep_prefix, table) is not None

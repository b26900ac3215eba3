from logging import getLogger

from ..table_structure import TableField, TableStructure
from .base import ChangeType, ConnectionExtender, SequenceValue, TriggerParams
from .registration import register_extender


logger = getLogger(__name__)


CHANGE_TRIGGER_FUNCTION = '''
CREATE OR REPLACE FUNCTION {function_name}() RETURNS TRIGGER AS $change_trigger$
  BEGIN
    {activity_check}
    IF (TG_OP = 'DELETE') THEN
      INSERT INTO {log_table}(change_table, change_key, change_type, change_time)
        SELECT {table_literal}, {old_key}, '{delete}', now();
    ELSIF (TG_OP = 'UPDATE') THEN
      IF {new_key} <> {old_key} THEN
        INSERT INTO {log_table}(change_table, change_key, change_new_key, change_type, change_time)
          SELECT {table_literal}, {old_key}, {new_key}, '{update}', now();
      ELSE
        INSERT INTO {log_table}(change_table, change_key, change_type, change_time)
          SELECT {table_literal}, {new_key}, '{update}', now();
      END IF;
    ELSIF (TG_OP = 'INSERT') THEN
      INSERT INTO {log_table}(change_table, change_key, change_type, change_time)
        SELECT {table_literal}, {new_key}, '{insert}', now();
    END IF;
    RETURN NULL;
  END;
$change_trigger$ LANGUAGE plpgsql;
'''

CHANGE_TRIGGER = '''
CREATE TRIGGER {trigger_name}
AFTER INSERT OR UPDATE OR DELETE ON {table}
FOR EACH ROW EXECUTE PROCEDURE {function_name}();
'''

ACTIVITY_CHECK = '''IF EXISTS (SELECT 1 FROM {activity_table} WHERE active) THEN
      RETURN NULL;
    END IF;'''

TABLE_SEQUENCES_QUERY = '''
SELECT a.attname AS column_name, s.relname AS sequence_name,
       format_type(a.atttypid, a.atttypmod) AS column_type
FROM pg_class t
JOIN pg_namespace n ON n.oid = t.relnamespace
JOIN pg_depend d ON d.refobjid = t.oid AND d.refobjsubid > 0
JOIN pg_class s ON s.oid = d.objid AND s.relkind = 'S'
JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = d.refobjsubid
WHERE t.relname = %s AND n.nspname = %s
ORDER BY a.attnum
'''

COLUMNS_QUERY = '''
SELECT column_name, data_type, is_nullable, column_default, is_identity
FROM information_schema.columns
WHERE table_schema = %s AND table_name = %s
ORDER BY ordinal_position
'''

PRIMARY_KEY_QUERY = '''
SELECT a.attname AS column_name
FROM pg_index i
JOIN pg_class t ON t.oid = i.indrelid
JOIN pg_namespace n ON n.oid = t.relnamespace
JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(i.indkey)
WHERE i.indisprimary AND t.relname = %s AND n.nspname = %s
ORDER BY array_position(i.indkey::int2[], a.attnum)
'''


@register_extender('postgresql')
class PostgresqlExtender(ConnectionExtender):
    adapter = 'postgresql'
    auto_key_column_type = 'BIGSERIAL PRIMARY KEY'

    @property
    def schema(self):
        return self.db.settings.schema

    def quote_table(self, name: str) -> str:
        return f'{self.quote_identifier(self.schema)}.{self.quote_identifier(name)}'

    def get_tables(self) -> list[str]:
        rows = self.db.select_all(
            'SELECT tablename FROM pg_tables WHERE schemaname = %s', (self.schema,),
        )
        return [row['tablename'] for row in rows]

    def get_table_structure(self, table: str) -> TableStructure:
        structure = TableStructure(table_name=table)
        for row in self.db.select_all(COLUMNS_QUERY, (self.schema, table)):
            default = row['column_default'] or ''
            structure.fields.append(TableField(
                name=row['column_name'],
                field_type=row['data_type'],
                nullable=row['is_nullable'] == 'YES',
                auto_increment=default.startswith('nextval(') or row['is_identity'] == 'YES',
            ))
        rows = self.db.select_all(PRIMARY_KEY_QUERY, (table, self.schema))
        structure.primary_keys = [row['column_name'] for row in rows]
        return structure

    # capture triggers

    def trigger_exists(self, rep_prefix: str, table: str) -> bool:
        row = self.db.select_one(
            '''
            SELECT 1 AS found FROM pg_trigger tr
            JOIN pg_class t ON t.oid = tr.tgrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE tr.tgname = %s AND t.relname = %s AND n.nspname = %s
            ''',
            (self.capture_trigger_name(rep_prefix, table), table, self.schema),
        )
        return row is not None

    def create_replication_trigger(self, params: TriggerParams):
        trigger_name = self.capture_trigger_name(params.rep_prefix, params.table)
        function_name = self.quote_table(trigger_name)
        activity_check = ''
        if params.activity_table:
            activity_check = ACTIVITY_CHECK.format(
                activity_table=self.quote_table(params.activity_table),
            )
        self.db.execute(CHANGE_TRIGGER_FUNCTION.format(
            function_name=function_name,
            activity_check=activity_check,
            log_table=self.quote_table(params.log_table),
            table_literal=self.quote_literal(params.table),
            old_key=self.key_clause(params.keys, 'OLD'),
            new_key=self.key_clause(params.keys, 'NEW'),
            insert=ChangeType.INSERT,
            update=ChangeType.UPDATE,
            delete=ChangeType.DELETE,
        ))
        self.db.execute(CHANGE_TRIGGER.format(
            trigger_name=self.quote_identifier(trigger_name),
            table=self.quote_table(params.table),
            function_name=function_name,
        ))

    def drop_replication_trigger(self, rep_prefix: str, table: str):
        trigger_name = self.capture_trigger_name(rep_prefix, table)
        self.db.execute(
            f'DROP TRIGGER {self.quote_identifier(trigger_name)} ON {self.quote_table(table)}'
        )
        self.db.execute(f'DROP FUNCTION {self.quote_table(trigger_name)}()')

    # sequences

    def sequence_values(self, rep_prefix: str, table: str) -> dict[str, SequenceValue]:
        result = {}
        for row in self.db.select_all(TABLE_SEQUENCES_QUERY, (table, self.schema)):
            sequence_name = row['sequence_name']
            state = self.db.select_one(
                f'SELECT last_value, is_called FROM {self.quote_table(sequence_name)}'
            )
            increment = self.db.select_one(
                'SELECT increment_by FROM pg_sequences WHERE schemaname = %s AND sequencename = %s',
                (self.schema, sequence_name),
            )['increment_by']
            last_value = int(state['last_value'])
            next_value = last_value + increment if state['is_called'] else last_value
            result[row['column_name']] = SequenceValue(
                name=sequence_name,
                increment=int(increment),
                value=last_value,
                next_value=next_value,
                column_type=row['column_type'],
            )
        return result

    def update_sequence(self, rep_prefix: str, table: str, column: str,
                        increment: int, offset: int, start: int):
        sequence_name = self.sequence_values(rep_prefix, table)[column].name
        qualified_name = self.quote_table(sequence_name)
        logger.debug(f'sequence {qualified_name}: increment {increment}, offset {offset}, restart at {start}')
        self.db.execute(f'ALTER SEQUENCE {qualified_name} INCREMENT BY {int(increment)}')
        self.db.execute('SELECT setval(%s, %s, false)', (qualified_name, int(start)))

    def clear_sequence_setup(self, rep_prefix: str, table: str):
        for value in self.sequence_values(rep_prefix, table).values():
            self.db.execute(f'ALTER SEQUENCE {self.quote_table(value.name)} INCREMENT BY 1')

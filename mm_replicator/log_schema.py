"""
Replication log tables.

Per side:
    <prefix>_change_log  - one row per captured row change
    <prefix>_active      - single boolean row, true while the replicator writes
Left side only:
    <prefix>_event_log   - shared auto key generator / event journal

The create and drop methods do not check for existence themselves; the
*_exists methods are the guards.
"""

from logging import getLogger

from .config import SIDES
from .errors import PartialInfrastructureError

logger = getLogger(__name__)


EVENT_LOG_SIDE = 'left'


def change_log_table_name(rep_prefix):
    return f'{rep_prefix}_change_log'


def event_log_table_name(rep_prefix):
    return f'{rep_prefix}_event_log'


def activity_marker_table_name(rep_prefix):
    return f'{rep_prefix}_active'


class LogSchemaManager:

    def __init__(self, session):
        self.session = session

    @property
    def rep_prefix(self):
        return self.session.configuration.rep_prefix

    @property
    def change_log_table(self):
        return change_log_table_name(self.rep_prefix)

    @property
    def event_log_table(self):
        return event_log_table_name(self.rep_prefix)

    @property
    def activity_marker_table(self):
        return activity_marker_table_name(self.rep_prefix)

    # change log

    def change_log_exists(self, side) -> bool:
        return self.session.database(side).table_exists(self.change_log_table)

    def create_change_log(self, side):
        db = self.session.database(side)
        extender = db.extender
        db.create_table(self.change_log_table, [
            extender.auto_key_column('id'),
            f'change_table {extender.string_type}',
            f'change_key {extender.string_type}',
            f'change_new_key {extender.string_type}',
            f'change_type {extender.change_type_type}',
            f'change_time {extender.timestamp_type}',
        ])

    def drop_change_log(self, side):
        self.session.database(side).drop_table(self.change_log_table)

    def purge_pending_changes(self, side, table) -> int:
        """Deletes the not yet consumed change log rows of a table"""
        db = self.session.database(side)
        return db.execute(
            f'DELETE FROM {db.quote_table(self.change_log_table)} WHERE change_table = %s',
            (table,),
        )

    # event log

    def event_log_exists(self) -> bool:
        return self.session.database(EVENT_LOG_SIDE).table_exists(self.event_log_table)

    def create_event_log(self):
        db = self.session.database(EVENT_LOG_SIDE)
        extender = db.extender
        db.create_table(self.event_log_table, [
            extender.auto_key_column('id'),
            f'change_table {extender.string_type}',
            f'change_key {extender.string_type}',
            f'description {extender.string_type}',
            f'event_time {extender.timestamp_type}',
        ])

    def drop_event_log(self):
        self.session.database(EVENT_LOG_SIDE).drop_table(self.event_log_table)

    # activity markers

    def activity_marker_exists(self, side) -> bool:
        return self.session.database(side).table_exists(self.activity_marker_table)

    def activity_marker_row(self, side):
        db = self.session.database(side)
        return db.select_one(f'SELECT active FROM {db.quote_table(self.activity_marker_table)} LIMIT 1')

    def ensure_activity_marker_tables(self):
        for side in SIDES:
            db = self.session.database(side)
            if not self.activity_marker_exists(side):
                db.create_table(self.activity_marker_table, [
                    f'active {db.extender.boolean_type}',
                ])
            elif self.activity_marker_row(side) is not None:
                continue
            else:
                logger.warning(f'{side} activity marker {self.activity_marker_table} has no row, inserting it')
            db.insert_record(self.activity_marker_table, {'active': False})

    def drop_activity_marker_tables(self):
        for side in SIDES:
            if self.activity_marker_exists(side):
                self.session.database(side).drop_table(self.activity_marker_table)

    # whole infrastructure

    def infrastructure_state(self) -> dict:
        """infrastructure table => sides on which it exists"""
        state = {
            self.change_log_table: [s for s in SIDES if self.change_log_exists(s)],
            self.activity_marker_table: [s for s in SIDES if self.activity_marker_exists(s)],
        }
        return state

    def partial_infrastructure(self) -> dict:
        """Tables present on one side only: table => sides lacking it"""
        missing = {}
        for table, sides in self.infrastructure_state().items():
            if sides and len(sides) != len(SIDES):
                missing[table] = [s for s in SIDES if s not in sides]
        return missing

    def verify_infrastructure(self):
        missing = self.partial_infrastructure()
        if missing:
            raise PartialInfrastructureError(missing)

    def ensure_infrastructure(self):
        missing = self.partial_infrastructure()
        if missing:
            logger.warning(f'partial replication infrastructure {missing}, creating the missing tables')

        for side in SIDES:
            if not self.change_log_exists(side):
                logger.info(f'creating {side} change log {self.change_log_table}')
                self.create_change_log(side)
        if not self.event_log_exists():
            logger.info(f'creating event log {self.event_log_table}')
            self.create_event_log()
        self.ensure_activity_marker_tables()

    def drop_infrastructure(self):
        for side in SIDES:
            if self.change_log_exists(side):
                self.drop_change_log(side)
        if self.event_log_exists():
            self.drop_event_log()
        self.drop_activity_marker_tables()

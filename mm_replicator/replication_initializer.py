from logging import getLogger

from .config import SIDES
from .errors import InitialSyncError, ReplicatorError
from .log_schema import LogSchemaManager
from .sequence_coordinator import SequenceCoordinator
from .trigger_manager import TriggerManager

logger = getLogger(__name__)


class ReplicationInitializer:
    """Brings the replication infrastructure of a session into the configured state.

    table_syncer is the full table sync collaborator, called as
    table_syncer(session, table_pair) once for every table pair which gets its
    triggers in this run. Without one such pairs keep no triggers from the run
    and InitialSyncError is raised.
    """

    def __init__(self, session, table_syncer=None):
        self.session = session
        self.table_syncer = table_syncer
        self.log_schema = LogSchemaManager(session)
        self.sequences = SequenceCoordinator(session)
        self.triggers = TriggerManager(session)

    @property
    def configuration(self):
        return self.session.configuration

    def options(self, table=None):
        if table is not None:
            return self.configuration.options_for_table(table)
        return self.configuration.options()

    # triggers

    def create_trigger(self, side, table):
        self.triggers.create_trigger(side, table)

    def trigger_exists(self, side, table) -> bool:
        return self.triggers.trigger_exists(side, table)

    def drop_trigger(self, side, table):
        self.triggers.drop_trigger(side, table)

    # sequences

    def ensure_sequence_setup(self, table_pair, increment, left_offset, right_offset):
        self.sequences.ensure_sequence_setup(table_pair, increment, left_offset, right_offset)

    def clear_sequence_setup(self, side, table):
        self.sequences.clear_sequence_setup(side, table)

    def outdated_sequence_values(self, side, table, increment, offset) -> dict:
        return self.sequences.outdated_sequence_values(side, table, increment, offset)

    def outdated_key_values(self, side, table, increment, offset) -> dict:
        return self.sequences.outdated_key_values(side, table, increment, offset)

    # log tables

    def change_log_exists(self, side) -> bool:
        return self.log_schema.change_log_exists(side)

    def create_change_log(self, side):
        self.log_schema.create_change_log(side)

    def drop_change_log(self, side):
        self.log_schema.drop_change_log(side)

    def event_log_exists(self) -> bool:
        return self.log_schema.event_log_exists()

    def create_event_log(self):
        self.log_schema.create_event_log()

    def drop_event_log(self):
        self.log_schema.drop_event_log()

    def ensure_activity_marker_tables(self):
        self.log_schema.ensure_activity_marker_tables()

    def ensure_infrastructure(self):
        self.log_schema.ensure_infrastructure()

    def verify_infrastructure(self):
        self.log_schema.verify_infrastructure()

    # lifecycle

    def is_infrastructure_table(self, table) -> bool:
        return table.startswith(f'{self.configuration.rep_prefix}_')

    def exclude_infrastructure_tables(self):
        self.configuration.exclude_tables(f'{self.configuration.rep_prefix}_*')

    exclude_rubyrep_tables = exclude_infrastructure_tables

    def restore_unconfigured_tables(self, configured_table_pairs=None) -> list:
        """Removes triggers, sequence setups and pending changes of tables no longer configured.

        A failing table does not stop the others; returns the failures as
        (side, table, exception) tuples.
        """
        if configured_table_pairs is None:
            configured_table_pairs = self.session.configured_table_pairs()

        failures = []
        for side in SIDES:
            configured_tables = {table_pair[side] for table_pair in configured_table_pairs}
            for table in self.session.database(side).get_tables():
                if table in configured_tables or self.is_infrastructure_table(table):
                    continue
                try:
                    self.restore_table(side, table)
                except Exception as e:
                    logger.error(f'failed to restore {side} table {table}: {e}', exc_info=True)
                    failures.append((side, table, e))

        if failures:
            logger.error(f'restore of unconfigured tables failed for {len(failures)} tables:')
            for side, table, error in failures:
                logger.error(f'  - {side} {table}: {error}')
        return failures

    def restore_table(self, side, table):
        # trigger first so nothing new is logged, sequence setup last
        if self.triggers.any_trigger_exists(side, table):
            logger.info(f'dropping replication trigger of unconfigured {side} table {table}')
            self.drop_trigger(side, table)
        # pending changes are purged on every run, an earlier run may have stopped before
        if self.change_log_exists(side):
            purged = self.log_schema.purge_pending_changes(side, table)
            if purged:
                logger.info(f'purged {purged} pending changes of {side} table {table}')
        if self.sequences.sequence_setup_exists(side, table):
            self.clear_sequence_setup(side, table)

    def prepare_replication(self):
        self.exclude_infrastructure_tables()
        logger.info('verifying replication infrastructure tables')
        self.ensure_infrastructure()
        logger.info('removing replication setup of unconfigured tables')
        self.restore_unconfigured_tables()

        logger.info('verifying replication setup of configured tables')
        unsynced = []
        for table_pair in self.session.configured_table_pairs():
            table_options = self.options(table_pair.left)
            self.ensure_sequence_setup(
                table_pair,
                table_options.sequence_increment,
                table_options.left_sequence_offset,
                table_options.right_sequence_offset,
            )

            created_sides = []
            for side in SIDES:
                if not self.trigger_exists(side, table_pair[side]):
                    self.create_trigger(side, table_pair[side])
                    created_sides.append(side)
            if created_sides and table_options.initial_sync:
                unsynced.append((table_pair, created_sides))

        if unsynced:
            self.sync_tables(unsynced)
        logger.info('replication prepared')

    def sync_tables(self, unsynced: list):
        if self.table_syncer is None:
            logger.error(
                f'no table syncer configured for the initial sync of '
                f'{", ".join(str(pair) for pair, _ in unsynced)}, '
                f'set the initial_sync option to false for tables synced by other means'
            )
            failed_pairs = []
            for table_pair, created_sides in unsynced:
                self.drop_created_triggers(table_pair, created_sides)
                failed_pairs.append((table_pair, ReplicatorError('no table syncer configured')))
            raise InitialSyncError(failed_pairs)

        logger.info(f'executing initial sync of {len(unsynced)} table pairs')
        failed_pairs = []
        for table_pair, created_sides in unsynced:
            try:
                self.table_syncer(self.session, table_pair)
                logger.info(f'initial sync of {table_pair} done')
            except Exception as e:
                logger.error(f'initial sync of {table_pair} failed: {e}', exc_info=True)
                failed_pairs.append((table_pair, e))
                self.drop_created_triggers(table_pair, created_sides)

        if failed_pairs:
            raise InitialSyncError(failed_pairs)

    def drop_created_triggers(self, table_pair, created_sides):
        # without triggers the next run syncs the pair again
        for side in created_sides:
            self.drop_trigger(side, table_pair[side])

    def drop_infrastructure(self):
        """Removes every trace of replication from both databases"""
        for side in SIDES:
            for table in self.session.database(side).get_tables():
                if self.is_infrastructure_table(table):
                    continue
                if self.triggers.any_trigger_exists(side, table):
                    self.drop_trigger(side, table)
                if self.sequences.sequence_setup_exists(side, table):
                    self.clear_sequence_setup(side, table)
        self.log_schema.drop_infrastructure()
        logger.info('replication infrastructure removed')

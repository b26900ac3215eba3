from logging import getLogger

from .errors import SchemaMismatchError, TriggerAlreadyExistsError, TriggerNotFoundError
from .extenders import TriggerParams
from .log_schema import activity_marker_table_name, change_log_table_name

logger = getLogger(__name__)


class TriggerManager:
    """Installs and removes the change capture triggers of replicated tables.

    Callers guard with trigger_exists(): creating an existing trigger raises
    TriggerAlreadyExistsError and dropping a missing one TriggerNotFoundError.
    Leftovers of an interrupted creation (any_trigger_exists()) can be dropped.
    """

    def __init__(self, session):
        self.session = session

    def options(self, table):
        return self.session.configuration.options_for_table(table)

    def key_names(self, side, table) -> list[str]:
        keys = self.options(table).primary_key_names
        if keys:
            return list(keys)
        keys = self.session.database(side).get_primary_keys(table)
        if not keys:
            raise SchemaMismatchError(f'{side} table {table} has no primary key')
        return keys

    def trigger_exists(self, side, table) -> bool:
        prefix = self.session.configuration.rep_prefix
        return self.session.database(side).extender.trigger_exists(prefix, table)

    def any_trigger_exists(self, side, table) -> bool:
        prefix = self.session.configuration.rep_prefix
        return self.session.database(side).extender.any_trigger_exists(prefix, table)

    def create_trigger(self, side, table):
        if self.trigger_exists(side, table):
            raise TriggerAlreadyExistsError(side, table)

        options = self.options(table)
        params = TriggerParams(
            rep_prefix=options.rep_prefix,
            table=table,
            keys=self.key_names(side, table),
            log_table=change_log_table_name(options.rep_prefix),
            activity_table=(
                activity_marker_table_name(options.rep_prefix) if options.exclude_rr_activity else None
            ),
        )
        logger.info(f'creating {side} replication trigger for table {table} (key {params.keys})')
        self.session.database(side).extender.create_replication_trigger(params)

    def drop_trigger(self, side, table):
        if not self.any_trigger_exists(side, table):
            raise TriggerNotFoundError(side, table)
        logger.info(f'dropping {side} replication trigger of table {table}')
        prefix = self.session.configuration.rep_prefix
        self.session.database(side).extender.drop_replication_trigger(prefix, table)

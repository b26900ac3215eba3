import logging
from unittest.mock import MagicMock

import pytest

from mm_replicator.config import TablePair
from mm_replicator.errors import InitialSyncError
from mm_replicator.replication_initializer import ReplicationInitializer


@pytest.fixture
def configured(settings, left, right):
    """orders (same name on both sides) and customers / clients"""
    left.add_table('orders', next_value=5)
    right.add_table('orders', next_value=9)
    left.add_table('customers')
    right.add_table('clients')
    left.add_table('scratch')
    right.add_table('scratch')
    settings.include_tables('orders')
    settings.include_tables('customers, clients')


def synced_pairs(syncer):
    return [c.args[1] for c in syncer.call_args_list]


@pytest.mark.unit
def test_options(settings, session):
    settings.include_tables('orders', initial_sync=False)
    initializer = ReplicationInitializer(session)

    assert initializer.options().initial_sync
    assert not initializer.options('orders').initial_sync
    assert initializer.options('orders').sequence_increment == 2


@pytest.mark.unit
def test_exclude_infrastructure_tables(settings, session):
    ReplicationInitializer(session).exclude_infrastructure_tables()
    assert settings.is_table_excluded('rr_change_log')
    assert not settings.is_table_excluded('orders')
    assert ReplicationInitializer.exclude_rubyrep_tables is ReplicationInitializer.exclude_infrastructure_tables


@pytest.mark.unit
def test_prepare_replication(session, left, right, configured):
    syncer = MagicMock()
    ReplicationInitializer(session, table_syncer=syncer).prepare_replication()

    for db in (left, right):
        assert {'rr_change_log', 'rr_active'} <= set(db.tables)
    assert 'rr_event_log' in left.tables
    assert set(left.triggers) == {'rr_orders', 'rr_customers'}
    assert set(right.triggers) == {'rr_orders', 'rr_clients'}
    assert left.sequences['orders']['id'].next_value == 10
    assert right.sequences['orders']['id'].next_value == 9
    assert synced_pairs(syncer) == [TablePair('orders', 'orders'), TablePair('customers', 'clients')]
    assert syncer.call_args_list[0].args[0] is session


@pytest.mark.unit
def test_prepare_replication_ignores_infrastructure_tables(settings, session, left, configured):
    settings.include_tables('rr_change_log')
    syncer = MagicMock()
    ReplicationInitializer(session, table_syncer=syncer).prepare_replication()

    assert 'rr_rr_change_log' not in left.triggers
    assert TablePair('rr_change_log', 'rr_change_log') not in synced_pairs(syncer)


@pytest.mark.unit
def test_prepare_replication_twice_syncs_once(session, left, right, configured):
    syncer = MagicMock()
    initializer = ReplicationInitializer(session, table_syncer=syncer)
    initializer.prepare_replication()
    left.created_tables.clear()
    right.created_tables.clear()

    initializer.prepare_replication()

    assert syncer.call_count == 2
    assert left.created_tables == []
    assert right.created_tables == []
    assert len(left.sequence_updates) == 1
    assert len(right.sequence_updates) == 1


@pytest.mark.unit
def test_prepare_replication_without_initial_sync(settings, session, configured):
    settings.include_tables('orders', initial_sync=False)
    syncer = MagicMock()
    ReplicationInitializer(session, table_syncer=syncer).prepare_replication()

    assert synced_pairs(syncer) == [TablePair('customers', 'clients')]


@pytest.mark.unit
def test_prepare_replication_without_syncer(session, left, right, configured, caplog):
    initializer = ReplicationInitializer(session)
    with caplog.at_level(logging.ERROR):
        with pytest.raises(InitialSyncError) as exc_info:
            initializer.prepare_replication()

    assert 'no table syncer configured' in caplog.text
    assert [pair for pair, _ in exc_info.value.failed_pairs] == [
        TablePair('orders', 'orders'), TablePair('customers', 'clients'),
    ]
    # nothing is marked as synced
    assert left.triggers == {}
    assert right.triggers == {}

    syncer = MagicMock()
    initializer.table_syncer = syncer
    initializer.prepare_replication()

    assert synced_pairs(syncer) == [TablePair('orders', 'orders'), TablePair('customers', 'clients')]


@pytest.mark.unit
def test_prepare_replication_without_syncer_and_initial_sync(settings, session, left, configured):
    settings.include_tables('orders', initial_sync=False)
    settings.include_tables('customers, clients', initial_sync=False)

    ReplicationInitializer(session).prepare_replication()

    assert set(left.triggers) == {'rr_orders', 'rr_customers'}


@pytest.mark.unit
def test_failed_sync_is_retried_next_run(session, left, right, configured):
    def failing_syncer(session, table_pair):
        if table_pair.left == 'orders':
            raise RuntimeError('sync failed')

    initializer = ReplicationInitializer(session, table_syncer=failing_syncer)
    with pytest.raises(InitialSyncError) as exc_info:
        initializer.prepare_replication()

    [(failed_pair, error)] = exc_info.value.failed_pairs
    assert failed_pair == TablePair('orders', 'orders')
    assert isinstance(error, RuntimeError)
    # triggers of the failed pair are gone, the other pair stays synced
    assert set(left.triggers) == {'rr_customers'}
    assert set(right.triggers) == {'rr_clients'}

    syncer = MagicMock()
    initializer.table_syncer = syncer
    initializer.prepare_replication()

    assert synced_pairs(syncer) == [TablePair('orders', 'orders')]
    assert set(left.triggers) == {'rr_orders', 'rr_customers'}


@pytest.mark.unit
def test_restore_unconfigured_tables(session, left, right, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()
    initializer.create_trigger('left', 'scratch')
    left.insert_record('rr_change_log', {'change_table': 'scratch', 'change_key': 'id|1'})
    left.insert_record('rr_change_log', {'change_table': 'orders', 'change_key': 'id|1'})

    failures = initializer.restore_unconfigured_tables()

    assert failures == []
    assert not initializer.trigger_exists('left', 'scratch')
    assert [row['change_table'] for row in left.rows('rr_change_log')] == ['orders']
    assert set(left.triggers) == {'rr_orders', 'rr_customers'}
    assert set(right.triggers) == {'rr_orders', 'rr_clients'}


@pytest.mark.unit
def test_restore_unconfigured_tables_purges_after_interrupted_run(session, left, right, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()
    initializer.create_trigger('left', 'scratch')
    left.insert_record('rr_change_log', {'change_table': 'scratch', 'change_key': 'id|1'})

    purge_pending_changes = initializer.log_schema.purge_pending_changes
    initializer.log_schema.purge_pending_changes = MagicMock(side_effect=RuntimeError('connection lost'))
    failures = initializer.restore_unconfigured_tables()

    assert [(side, table) for side, table, _ in failures] == [('left', 'scratch'), ('right', 'scratch')]
    assert not initializer.trigger_exists('left', 'scratch')
    assert [row['change_table'] for row in left.rows('rr_change_log')] == ['scratch']

    initializer.log_schema.purge_pending_changes = purge_pending_changes
    assert initializer.restore_unconfigured_tables() == []
    assert left.rows('rr_change_log') == []


@pytest.mark.unit
def test_restore_unconfigured_tables_drops_partial_triggers(session, left, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()
    left.extender.any_trigger_exists = MagicMock(side_effect=lambda prefix, table: table == 'scratch')
    left.extender.drop_replication_trigger = MagicMock()

    assert initializer.restore_unconfigured_tables() == []

    left.extender.drop_replication_trigger.assert_called_once_with('rr', 'scratch')


@pytest.mark.unit
def test_restore_unconfigured_tables_clears_sequences(session, left, right, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()
    left.add_table('archive', next_value=7)
    left.sequences['archive']['id'].increment = 2

    initializer.restore_unconfigured_tables()

    assert left.sequences['archive']['id'].increment == 1
    assert left.sequences['orders']['id'].increment == 2


@pytest.mark.unit
def test_restore_unconfigured_tables_isolates_failures(session, left, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()
    left.add_table('archive')
    initializer.create_trigger('left', 'scratch')
    initializer.create_trigger('left', 'archive')

    original_drop = left.extender.drop_replication_trigger

    def drop_replication_trigger(rep_prefix, table):
        if table == 'scratch':
            raise RuntimeError('permission denied')
        original_drop(rep_prefix, table)

    left.extender.drop_replication_trigger = drop_replication_trigger

    failures = initializer.restore_unconfigured_tables()

    assert [(side, table) for side, table, _ in failures] == [('left', 'scratch')]
    assert not initializer.trigger_exists('left', 'archive')
    assert initializer.trigger_exists('left', 'scratch')


@pytest.mark.unit
def test_drop_infrastructure(session, left, right, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()

    initializer.drop_infrastructure()

    assert left.triggers == {}
    assert right.triggers == {}
    assert set(left.tables) == {'orders', 'customers', 'scratch'}
    assert set(right.tables) == {'orders', 'clients', 'scratch'}
    assert left.sequences['orders']['id'].increment == 1
    assert right.sequences['orders']['id'].increment == 1


@pytest.mark.unit
def test_drop_infrastructure_drops_partial_triggers(session, left, configured):
    initializer = ReplicationInitializer(session, table_syncer=MagicMock())
    initializer.prepare_replication()
    left.extender.any_trigger_exists = MagicMock(side_effect=lambda prefix, table: table == 'scratch')
    left.extender.drop_replication_trigger = MagicMock()

    initializer.drop_infrastructure()

    left.extender.drop_replication_trigger.assert_called_once_with('rr', 'scratch')
    assert 'rr_change_log' not in left.tables

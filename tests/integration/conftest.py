"""Fixtures for tests against the live databases of tests/configs/tests_config.yaml"""

from pathlib import Path

import pytest

from mm_replicator.config import SIDES, Settings
from mm_replicator.connection_pool import get_pool_manager
from mm_replicator.replication_initializer import ReplicationInitializer
from mm_replicator.session import Session

CONFIG_FILE = str(Path(__file__).parent.parent / 'configs' / 'tests_config.yaml')

TABLE_DDL = {
    'postgresql': {
        'trigger_test': (
            'first_id INT NOT NULL, second_id INT NOT NULL, name VARCHAR(100), '
            'PRIMARY KEY (first_id, second_id)'
        ),
        'sequence_test': 'id SERIAL PRIMARY KEY, name VARCHAR(100)',
        'scanner_records': 'id SERIAL PRIMARY KEY, name VARCHAR(100)',
        'scanner_left_records_only': 'id SERIAL PRIMARY KEY, name VARCHAR(100)',
    },
    'mysql': {
        'trigger_test': (
            'first_id INT NOT NULL, second_id INT NOT NULL, name VARCHAR(100), '
            'PRIMARY KEY (first_id, second_id)'
        ),
        'sequence_test': 'id INT NOT NULL AUTO_INCREMENT PRIMARY KEY, name VARCHAR(100)',
        'scanner_records': 'id INT NOT NULL AUTO_INCREMENT PRIMARY KEY, name VARCHAR(100)',
        'scanner_left_records_only': 'id INT NOT NULL AUTO_INCREMENT PRIMARY KEY, name VARCHAR(100)',
    },
}


def create_test_tables(db):
    for table, columns in TABLE_DDL[db.settings.adapter].items():
        db.execute(f'DROP TABLE IF EXISTS {db.quote_table(table)}')
        db.execute(f'CREATE TABLE {db.quote_table(table)} ({columns})')


def drop_test_tables(db):
    for table in TABLE_DDL[db.settings.adapter]:
        db.execute(f'DROP TABLE IF EXISTS {db.quote_table(table)}')


@pytest.fixture
def settings():
    settings = Settings()
    settings.load(CONFIG_FILE)
    return settings


@pytest.fixture
def session(settings):
    session = Session(settings)
    for side in SIDES:
        create_test_tables(session.database(side))
    yield session
    ReplicationInitializer(session).drop_infrastructure()
    for side in SIDES:
        drop_test_tables(session.database(side))
    session.close()
    get_pool_manager().close_all_pools()


@pytest.fixture
def initializer(session):
    initializer = ReplicationInitializer(session)
    initializer.ensure_infrastructure()
    return initializer

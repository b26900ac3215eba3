#!/usr/bin/env python3

import argparse
import logging
import sys

from .config import Settings
from .connection_pool import get_pool_manager
from .replication_initializer import ReplicationInitializer
from .session import Session


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr (stdout for containerized environments)."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_levels = {
        'critical': logging.CRITICAL,
        'error': logging.ERROR,
        'warning': logging.WARNING,
        'info': logging.INFO,
        'debug': logging.DEBUG,
    }

    log_level = log_levels.get(log_level_str)
    if log_level is None:
        logging.warning(f'Unknown log level {log_level_str}, setting info')
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=f'[{tags} %(asctime)s %(levelname)8s] %(message)s',
        handlers=handlers,
    )


def run_prepare(initializer: ReplicationInitializer):
    initializer.prepare_replication()


def run_restore(initializer: ReplicationInitializer):
    initializer.exclude_infrastructure_tables()
    failures = initializer.restore_unconfigured_tables()
    if failures:
        sys.exit(1)


def run_uninstall(initializer: ReplicationInitializer):
    initializer.drop_infrastructure()


def run_verify(initializer: ReplicationInitializer):
    initializer.verify_infrastructure()
    logging.info('replication infrastructure is consistent')


MODES = {
    'prepare': run_prepare,
    'restore': run_restore,
    'uninstall': run_uninstall,
    'verify': run_verify,
}


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "mode", help="run mode",
        type=str,
        choices=list(MODES),
    )
    parser.add_argument("--config", help="config file path", default='config.yaml', type=str)
    args = parser.parse_args()

    config = Settings()
    config.load(args.config)

    set_logging_config(f'mmrepl {args.mode}', log_level_str=config.log_level)

    session = Session(config)
    try:
        MODES[args.mode](ReplicationInitializer(session))
    finally:
        session.close()
        get_pool_manager().close_all_pools()


if __name__ == '__main__':
    main()

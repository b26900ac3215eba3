class ReplicatorError(Exception):
    pass


class InfrastructureExistsError(ReplicatorError):
    pass


class TriggerAlreadyExistsError(InfrastructureExistsError):
    def __init__(self, side, table):
        super().__init__(f'replication trigger for {side} table {table} already exists')
        self.side = side
        self.table = table


class TriggerNotFoundError(ReplicatorError):
    def __init__(self, side, table):
        super().__init__(f'no replication trigger for {side} table {table}')
        self.side = side
        self.table = table


class SchemaMismatchError(ReplicatorError):
    pass


class PartialInfrastructureError(ReplicatorError):
    """Infrastructure tables exist on one side only"""

    def __init__(self, missing: dict):
        # missing: table name => list of sides lacking it
        details = ', '.join(f'{table} missing on {"/".join(sides)}' for table, sides in missing.items())
        super().__init__(f'partial replication infrastructure: {details}')
        self.missing = missing


class InitialSyncError(ReplicatorError):
    def __init__(self, failed_pairs: list):
        names = ', '.join(str(pair) for pair, _ in failed_pairs)
        super().__init__(f'Initial sync failed for {len(failed_pairs)} table pairs: {names}')
        self.failed_pairs = failed_pairs

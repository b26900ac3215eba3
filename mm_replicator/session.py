from logging import getLogger

from .config import SIDES, Settings, TablePair
from .database_api import DatabaseApi

logger = getLogger(__name__)


class Session:
    """The left and right database of one replication run plus its configuration"""

    def __init__(self, configuration: Settings, left=None, right=None):
        self.configuration = configuration
        self.left = left if left is not None else DatabaseApi('left', configuration.left)
        self.right = right if right is not None else DatabaseApi('right', configuration.right)

    def database(self, side: str):
        if side not in SIDES:
            raise ValueError(f'unknown database side {side}')
        return getattr(self, side)

    def configured_table_pairs(self) -> list[TablePair]:
        return self.configuration.resolve_table_pairs(self.left.get_tables())

    def close(self):
        self.left.close()
        self.right.close()

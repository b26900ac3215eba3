from .base import ChangeType, ConnectionExtender, SequenceValue, TriggerParams
from .registration import extenders, get_extender_class, register, register_extender

# Importing the engine modules registers them
from . import mysql_extender, postgresql_extender  # noqa: F401

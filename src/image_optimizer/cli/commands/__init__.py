"""CLI command modules."""

from .optimize import OptimizeCommands
from .state import StateCommands
from .utils import UtilityCommands

__all__ = ["OptimizeCommands", "StateCommands", "UtilityCommands"]

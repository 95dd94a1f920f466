"""CLI module for the image optimizer."""

from .commands import OptimizeCommands, StateCommands, UtilityCommands
from .main import ImageOptimizerCLI

__all__ = [
    "ImageOptimizerCLI",
    "OptimizeCommands",
    "StateCommands",
    "UtilityCommands",
]

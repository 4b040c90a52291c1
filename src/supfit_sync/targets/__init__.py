"""Daily targets form."""

from .targets_schemas import DailyTargets, validate_targets
from .targets_service import LoadedTargets, TargetsService

__all__ = ["DailyTargets", "LoadedTargets", "TargetsService", "validate_targets"]

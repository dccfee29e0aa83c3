"""
Configuration models for the Ralph runtime.

Each dataclass here carries sensible defaults and a ``from_environment``
constructor so a run can be tuned through ``RALPH_*`` variables without code
changes.
"""
from .loop import ContextBudgetConfig, LoopConfig, NoVerdictPolicy

__all__ = ["ContextBudgetConfig", "LoopConfig", "NoVerdictPolicy"]

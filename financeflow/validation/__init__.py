"""Action validation package."""

from financeflow.validation.validator import ActionValidator

__all__ = ["ActionValidator"]

from .engine import RecurrenceEngine

__all__ = ["RecurrenceEngine"]

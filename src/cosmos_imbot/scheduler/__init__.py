"""Periodic maintenance tasks."""

from .reclaimer import ThreadReclaimer

__all__ = ["ThreadReclaimer"]

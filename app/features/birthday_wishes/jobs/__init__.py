"""
Job runners for the birthday wish feature.
"""

from .birthday_job import run_birthday_once, start_birthday_scheduler

__all__ = ["run_birthday_once", "start_birthday_scheduler"]

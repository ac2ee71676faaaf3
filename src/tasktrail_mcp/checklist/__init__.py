"""Checklist parsing exports."""

from .models import Task
from .parser import mark_task_completed, parse_checklist

__all__ = ["Task", "mark_task_completed", "parse_checklist"]

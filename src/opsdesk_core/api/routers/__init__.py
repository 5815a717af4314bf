"""API routers for OpsDesk Core."""

from . import departments, task_templates, playbooks, incidents, tasks, notifications

__all__ = ["departments", "task_templates", "playbooks", "incidents", "tasks", "notifications"]

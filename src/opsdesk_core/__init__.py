"""OpsDesk Core - playbook versioning and incident task generation.

Modules:
- departments: department directory and leader resolution
- task_templates: reusable task definitions
- playbook_steps: ordered step store and override resolution
- playbooks: versioning service (copy-on-write forks) and guarded step edits
- task_generation: expands a playbook into incident tasks
- incident_tasks: task lifecycle, assignment and overdue notifications
- incidents: incident CRUD and incident log
- notifications: in-app notification records
"""

__version__ = "1.0.0"

"""Exceptions shared by the playbook, incident and task services."""
from typing import Optional


class NotFoundError(LookupError):
    """Raised when a referenced record does not exist."""

    def __init__(self, entity: str, entity_id: Optional[str]):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class StaleVersionReferenceError(Exception):
    """Raised when a step mutation targets a playbook version that was just superseded.

    The caller held identifiers (step ids, positions) from ``requested_playbook_id``
    but editing that playbook forked a new version. The mutation was not applied;
    the caller should reload ``current_playbook`` and retry.
    """

    def __init__(self, message: str, requested_playbook_id: str, current_playbook):
        super().__init__(message)
        self.requested_playbook_id = requested_playbook_id
        self.current_playbook = current_playbook


class InvalidReorderError(ValueError):
    """Raised when step positions fall outside the playbook's step list."""

    def __init__(self, message: str, from_index: int, to_index: int, step_count: int):
        super().__init__(message)
        self.from_index = from_index
        self.to_index = to_index
        self.step_count = step_count

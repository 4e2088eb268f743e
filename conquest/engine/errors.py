"""
Engine exceptions.

NotFoundError is raised for references to entities that do not exist.
ActionRejected is internal to the reducer: handlers raise it when a rule
precondition fails, and apply_action turns it into an action_rejected event.
"""


class NotFoundError(ValueError):
    """A player, province, war or alliance id does not exist in the game state."""

    def __init__(self, entity: str, entity_id: str | None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ActionRejected(Exception):
    """A rule precondition failed; the action leaves state unchanged."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

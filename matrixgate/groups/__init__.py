"""Registry of rooms served by the gateway."""

from matrixgate.groups.store import RegisteredGroup, RegisteredGroupsStore

__all__ = ["RegisteredGroup", "RegisteredGroupsStore"]

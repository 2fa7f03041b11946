"""Capability-set registry keyed by agent kind."""

import logging
from typing import Iterator, Literal

from criteria import CapabilitySet
from project_manager_criteria import create_project_manager_capability
from ui_designer_criteria import create_ui_designer_capability

logger = logging.getLogger(__name__)

AgentKind = Literal["project_manager", "ui_designer"]


class CapabilityRegistry:
    """
    Maps agent ids to capability sets.

    Build one explicitly and hand it to whoever needs it; there is no shared
    module-level instance.
    """

    def __init__(self, capabilities: list[CapabilitySet] | None = None):
        self._capabilities: dict[str, CapabilitySet] = {}
        for capability in capabilities or []:
            self.register(capability)

    def register(self, capability: CapabilitySet) -> None:
        if not capability.agent_id:
            raise ValueError(f"{capability!r} has no agent_id")
        if capability.agent_id in self._capabilities:
            logger.debug("Replacing capability set for %s", capability.agent_id)
        self._capabilities[capability.agent_id] = capability

    def get(self, agent_id: str) -> CapabilitySet:
        try:
            return self._capabilities[agent_id]
        except KeyError:
            known = ", ".join(sorted(self._capabilities)) or "none"
            raise ValueError(f"Unknown agent type: {agent_id} (known: {known})") from None

    def agent_ids(self) -> list[str]:
        return list(self._capabilities)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._capabilities

    def __iter__(self) -> Iterator[CapabilitySet]:
        return iter(self._capabilities.values())

    def __len__(self) -> int:
        return len(self._capabilities)


def default_registry() -> CapabilityRegistry:
    """A fresh registry holding the bundled project-manager and UI-designer sets."""
    return CapabilityRegistry(
        [create_project_manager_capability(), create_ui_designer_capability()]
    )

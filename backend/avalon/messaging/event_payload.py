"""Centralized event payload shaping for wire serialization.

Every outbound game message is a flat map: {"type": <event type>, **fields}
with the internal routing target removed and unset optional fields omitted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from avalon.logic.events import ServiceEvent


def service_event_payload(event: ServiceEvent) -> dict[str, Any]:
    """Return the wire-format dict for a ServiceEvent payload.

    The "target" field is internal-only and never reaches clients; None
    fields (required_count, proposed_team, timer_end outside their phases)
    are excluded.
    """
    return {
        "type": event.event.value,
        **event.data.model_dump(
            exclude={"type", "target"},
            mode="json",
            exclude_none=True,
        ),
    }

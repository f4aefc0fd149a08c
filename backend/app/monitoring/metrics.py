"""Metric definitions for the realtime messaging core."""

from __future__ import annotations

from .registry import registry


realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of users with a live websocket connection in the presence registry.",
    label_names=("scope",),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events handled (in) or emitted (out) by the relay.",
    label_names=("event", "direction"),
)

relay_errors_total = registry.counter(
    "relay_errors_total",
    "Relay requests rejected with an error event, by error code.",
    label_names=("code",),
)

relay_deliveries_total = registry.counter(
    "relay_deliveries_total",
    "Outcome of send-message: delivered live or stored for the next history fetch.",
    label_names=("outcome",),
)

presence_replacements_total = registry.counter(
    "presence_replacements_total",
    "Registrations that replaced an existing connection of the same user.",
)

"""
Event replay.

Rebuilds the sync-relevant state by applying events in version order to an
empty state. `replay(delta(0).events)` at version V equals
`normalize_snapshot(snapshot())` taken at V.
"""

from typing import Any, Iterable, Optional

State = dict[str, dict[str, dict[str, Any]]]

COLLECTIONS = {
    "workspace": "workspaces",
    "session": "sessions",
    "message": "messages",
    "checkpoint": "checkpoints",
}
# Rows owned by a session disappear with it
_SESSION_OWNED = ("messages", "checkpoints")


def empty_state() -> State:
    return {name: {} for name in COLLECTIONS.values()}


def apply_event(state: State, event: dict[str, Any]) -> State:
    """Apply one event in place; unknown entity types are ignored."""
    collection = COLLECTIONS.get(event.get("entity_type") or "")
    if collection is None:
        return state

    action = event["event_type"].rsplit(".", 1)[-1]
    entity_id = event["entity_id"]
    rows = state[collection]

    if action in ("created", "updated"):
        rows[entity_id] = dict(event["data"])
    elif action == "deleted":
        rows.pop(entity_id, None)
        if collection == "sessions":
            for owned in _SESSION_OWNED:
                state[owned] = {
                    key: row
                    for key, row in state[owned].items()
                    if row.get("session_id") != entity_id
                }
    return state


def replay(events: Iterable[dict[str, Any]], state: Optional[State] = None) -> State:
    """
    Apply events in order.

    Raises:
        ValueError: If versions are not strictly increasing without gaps
    """
    state = state if state is not None else empty_state()
    previous: Optional[int] = None
    for event in events:
        version = event["version"]
        if previous is not None and version != previous + 1:
            raise ValueError(f"Event stream jumps from version {previous} to {version}")
        apply_event(state, event)
        previous = version
    return state


def normalize_snapshot(snapshot: dict[str, Any]) -> State:
    """Key snapshot rows by id so they compare directly with a replayed state."""
    return {
        collection: {row["id"]: row for row in snapshot.get(collection, [])}
        for collection in COLLECTIONS.values()
    }

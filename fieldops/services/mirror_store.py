"""
Local mirror stores.

In-process, ordered, unique-keyed copies of document collections used for
optimistic rendering. Mutations are synchronous and never talk to the
document store; every mutation builds new dicts (shallow merge) instead of
editing entities in place, so readers holding an old snapshot never see it
change underneath them.

``OptimisticSync`` pairs a local mutation with its remote write and rolls the
local state back when the write fails.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Entity = Dict[str, Any]
Listener = Callable[["MirrorStore"], None]


class MirrorStore:
    """Ordered collection of document dicts keyed by ``key``."""

    def __init__(self, name: str, key: str = "id", initial: Optional[Iterable[Entity]] = None):
        self.name = name
        self.key = key
        self._initial = [dict(e) for e in (initial or [])]
        self._items: List[Entity] = []
        self._listeners: List[Listener] = []
        self.version = 0
        self._set_items(self._initial)

    # ── Reads ───────────────────────────────────────────────────

    @property
    def items(self) -> Tuple[Entity, ...]:
        return tuple(self._items)

    def ids(self) -> List[Any]:
        return [item[self.key] for item in self._items]

    def get(self, entity_id: Any) -> Optional[Entity]:
        for item in self._items:
            if item.get(self.key) == entity_id:
                return item
        return None

    def __contains__(self, entity_id: Any) -> bool:
        return self.get(entity_id) is not None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self.items)

    # ── Mutations ───────────────────────────────────────────────

    def add(self, entity: Entity) -> None:
        """Append ``entity``; an entity with the same key is replaced in place."""
        entity_id = entity[self.key]
        if entity_id in self:
            self.put(entity)
            return
        self._items = [*self._items, dict(entity)]
        self._changed()

    def remove(self, entity_id: Any) -> bool:
        remaining = [item for item in self._items if item.get(self.key) != entity_id]
        if len(remaining) == len(self._items):
            return False
        self._items = remaining
        self._changed()
        return True

    def patch(self, entity_id: Any, fields: Dict[str, Any]) -> bool:
        """Shallow-merge ``fields`` into the matching entity; others are untouched."""
        if entity_id not in self:
            return False
        self._items = [
            {**item, **fields} if item.get(self.key) == entity_id else item
            for item in self._items
        ]
        self._changed()
        return True

    def put(self, entity: Entity) -> bool:
        """Replace the matching entity wholesale, keeping its position."""
        entity_id = entity[self.key]
        if entity_id not in self:
            return False
        self._items = [
            dict(entity) if item.get(self.key) == entity_id else item
            for item in self._items
        ]
        self._changed()
        return True

    def replace_all(self, entities: Iterable[Entity]) -> None:
        """Replace the full state with a remote snapshot."""
        self._set_items(entities)
        self._changed()

    def reset(self) -> None:
        """Back to the initial state."""
        self._set_items(self._initial)
        self._changed()

    def _set_items(self, entities: Iterable[Entity]) -> None:
        # Unique keys: a later duplicate wins but keeps the first position
        index: Dict[Any, int] = {}
        items: List[Entity] = []
        for entity in entities:
            entity_id = entity[self.key]
            if entity_id in index:
                items[index[entity_id]] = dict(entity)
            else:
                index[entity_id] = len(items)
                items.append(dict(entity))
        self._items = items

    # ── Change notification ─────────────────────────────────────

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Register a synchronous change listener; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"Mirror listener failed for {self.name}")


class TicketMirror(MirrorStore):
    """Mirror of the tickets collection with status flag helpers."""

    def __init__(self, initial: Optional[Iterable[Entity]] = None):
        super().__init__("tickets", key="id", initial=initial)

    def _toggle(self, ticket_id: str, field: str) -> bool:
        ticket = self.get(ticket_id)
        if ticket is None:
            return False
        return self.patch(ticket_id, {field: not ticket.get(field, False)})

    def toggle_remediation_required(self, ticket_id: str) -> bool:
        return self._toggle(ticket_id, "remediationRequired")

    def toggle_site_complete(self, ticket_id: str) -> bool:
        return self._toggle(ticket_id, "siteComplete")

    def set_equipment_on_site(self, ticket_id: str, value: bool) -> bool:
        return self.patch(ticket_id, {"equipmentOnSite": value})

    def update_status(self, ticket_id: str, status_update: Dict[str, Any]) -> bool:
        return self.patch(ticket_id, status_update)


class OptimisticSync:
    """Two-phase mutation: local apply, then remote write.

    If the remote write raises, the entity is restored to its pre-mutation
    value and the error is re-raised. If the remote write reports the
    document gone (returns None), the entity is dropped from the mirror.
    """

    def __init__(self, mirror: MirrorStore):
        self.mirror = mirror

    async def patch(
        self,
        entity_id: Any,
        fields: Dict[str, Any],
        remote_write: Callable[[], Awaitable[Optional[Entity]]],
    ) -> Optional[Entity]:
        previous = self.mirror.get(entity_id)
        self.mirror.patch(entity_id, fields)
        try:
            remote = await remote_write()
        except Exception:
            logger.warning(
                f"Remote write failed for {self.mirror.name}/{entity_id}; rolling back local change"
            )
            if previous is not None:
                self.mirror.put(previous)
            raise

        if remote is None:
            self.mirror.remove(entity_id)
        elif entity_id in self.mirror:
            self.mirror.put(remote)
        else:
            self.mirror.add(remote)
        return remote

    async def add(
        self,
        entity: Entity,
        remote_write: Callable[[], Awaitable[Entity]],
    ) -> Entity:
        self.mirror.add(entity)
        try:
            remote = await remote_write()
        except Exception:
            logger.warning(f"Remote create failed for {self.mirror.name}/{entity[self.mirror.key]}")
            self.mirror.remove(entity[self.mirror.key])
            raise
        if remote[self.mirror.key] != entity[self.mirror.key]:
            # Store assigned its own identifier
            self.mirror.remove(entity[self.mirror.key])
        self.mirror.add(remote)
        return remote

    async def remove(
        self,
        entity_id: Any,
        remote_write: Callable[[], Awaitable[Any]],
    ) -> Any:
        previous_items = self.mirror.items
        self.mirror.remove(entity_id)
        try:
            return await remote_write()
        except Exception:
            logger.warning(f"Remote delete failed for {self.mirror.name}/{entity_id}; restoring")
            self.mirror.replace_all(previous_items)
            raise

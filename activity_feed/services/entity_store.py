"""
SQLAlchemy-backed entity store.

Feed items point at caller-owned ORM objects by (type name, id). The store
dispatches each type name to its registered model class, batch-loads every
referenced id with one ``IN`` query per type, and then serves synchronous
``resolve`` calls from that snapshot.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from activity_feed.feed.records import ActivityRecord, EntityKey

logger = logging.getLogger(__name__)

# type name → ORM class
entity_models: dict[str, type] = {}


def register_entity_model(model: type, name: str | None = None) -> type:
    """Make ``model`` resolvable from feed items. Usable as a class decorator."""
    entity_models[name or getattr(model, "feed_entity_type", None) or model.__name__] = model
    return model


def _coerce_ids(python_type: type | None, ids: Iterable[str]) -> list[Any]:
    """Convert stored string ids to the primary key's python type, dropping bad ones."""
    coerced: list[Any] = []
    for raw in ids:
        if python_type is int:
            try:
                coerced.append(int(raw))
            except ValueError:
                continue
        elif python_type is uuid.UUID:
            try:
                coerced.append(uuid.UUID(raw))
            except ValueError:
                continue
        else:
            coerced.append(raw)
    return coerced


class SqlAlchemyEntityStore:

    def __init__(
        self,
        db: AsyncSession,
        models: Mapping[str, type] | None = None,
    ) -> None:
        self.db = db
        self.models = dict(entity_models if models is None else models)
        self._snapshot: dict[EntityKey, Any] = {}

    async def prefetch(self, records: Iterable[ActivityRecord]) -> int:
        """Load every entity referenced by ``records``. Returns objects found."""
        wanted: dict[str, set[str]] = {}
        for record in records:
            for ref in record.entity_refs:
                if ref.key not in self._snapshot:
                    wanted.setdefault(ref.entity_type, set()).add(str(ref.entity_id))

        found = 0
        for entity_type, ids in wanted.items():
            model = self.models.get(entity_type)
            if model is None:
                continue
            mapper = inspect(model)
            column = mapper.primary_key[0]
            attribute = mapper.get_property_by_column(column).key
            try:
                python_type = column.type.python_type
            except NotImplementedError:
                python_type = None

            keys = _coerce_ids(python_type, ids)
            if not keys:
                continue
            result = await self.db.execute(select(model).where(column.in_(keys)))
            for obj in result.scalars().all():
                self._snapshot[EntityKey(entity_type, getattr(obj, attribute))] = obj
                found += 1

        logger.debug("Prefetched feed entities: types=%d found=%d", len(wanted), found)
        return found

    def resolve(self, entity_type: str, entity_id: Any) -> Any | None:
        return self._snapshot.get(EntityKey(entity_type, entity_id))

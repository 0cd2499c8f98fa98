"""Find-or-create resolution of catalog entities within their parent scope.

Lookups are case-insensitive among active rows. Creation runs inside a
SAVEPOINT so a unique-index race with another writer only rolls back that
insert; the resolver then re-reads the (name, parent) slot and returns the
winner. Categories and subcategories additionally allocate a unique slug.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.core.config import get_settings
from catalog_backoffice.core.errors import BadRequestError, ConflictError
from catalog_backoffice.services.hierarchy import (
    EntityKind,
    KindSpec,
    find_active_by_name,
    get_active_entity,
    slug_taken,
    spec_for,
)
from catalog_backoffice.services.identity import (
    clean_name,
    normalize_name,
    slugify,
    title_case,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedEntity:
    kind: EntityKind
    id: str
    name: str
    was_created: bool


@dataclass
class ResolutionStats:
    """Per-kind tallies of created and referenced entities."""

    created: Counter = field(default_factory=Counter)
    referenced: Counter = field(default_factory=Counter)

    def record(self, kind: EntityKind, was_created: bool) -> None:
        bucket = self.created if was_created else self.referenced
        bucket[kind] += 1


class ResolveCache:
    """Memo of resolutions for a single ingestion run."""

    def __init__(self) -> None:
        self._entries: dict[str, ResolvedEntity] = {}

    @staticmethod
    def key(kind: EntityKind, name: str, parent_id: str | None = None) -> str:
        return f"{kind.value}:{parent_id or ''}:{normalize_name(name)}"

    def get(
        self, kind: EntityKind, name: str, parent_id: str | None = None
    ) -> ResolvedEntity | None:
        return self._entries.get(self.key(kind, name, parent_id))

    def put(self, resolved: ResolvedEntity, name: str, parent_id: str | None = None) -> None:
        self._entries[self.key(resolved.kind, name, parent_id)] = resolved

    def __len__(self) -> int:
        return len(self._entries)


def allocate_slug(
    session: Session,
    kind: EntityKind,
    name: str,
    start: int = 1,
    *,
    max_attempts: int | None = None,
    exclude_id: str | None = None,
) -> tuple[str, int]:
    """Return the first free slug candidate at or after counter ``start``.

    Counter 1 is the bare slug, N > 1 is ``{slug}-N``.
    """
    max_attempts = max_attempts or get_settings().slug_max_attempts
    base = slugify(name)
    if not base:
        raise BadRequestError(f"Cannot derive a slug from '{name}'")
    for counter in range(start, max_attempts + 1):
        candidate = base if counter == 1 else f"{base}-{counter}"
        if not slug_taken(session, kind, candidate, exclude_id=exclude_id):
            return candidate, counter
    raise BadRequestError(
        f"Could not allocate a unique slug for '{name}' after {max_attempts} attempts",
        {"kind": kind.value, "slug": base},
    )


class HierarchyResolver:
    """Resolve ``(kind, name, parent)`` to a single active row, creating it if needed.

    With ``commit=True`` every successful resolution is committed before it is
    memoized, so the cache never holds a row another failure could roll back.
    """

    def __init__(
        self,
        session: Session,
        actor: str,
        cache: ResolveCache | None = None,
        stats: ResolutionStats | None = None,
        *,
        commit: bool = False,
        max_attempts: int | None = None,
        slug_max_attempts: int | None = None,
    ) -> None:
        settings = get_settings()
        self.session = session
        self.actor = actor
        self.cache = cache
        self.stats = stats if stats is not None else ResolutionStats()
        self.commit = commit
        self.max_attempts = max_attempts or settings.resolve_max_attempts
        self.slug_max_attempts = slug_max_attempts or settings.slug_max_attempts

    def resolve(
        self,
        kind: EntityKind,
        name: str,
        parent_id: str | None = None,
        **attributes: Any,
    ) -> ResolvedEntity:
        spec = spec_for(kind)
        if kind is EntityKind.PRODUCT:
            raise BadRequestError("Products are created by ingestion, not resolved")

        cleaned = clean_name(name)
        if not cleaned:
            raise BadRequestError(f"{spec.label} name is required")

        if self.cache is not None:
            cached = self.cache.get(kind, cleaned, parent_id)
            if cached is not None:
                self.stats.record(kind, False)
                return replace(cached, was_created=False)

        if spec.parent_kind is not None:
            get_active_entity(self.session, spec.parent_kind, parent_id)

        entity, created = self._find_or_create(kind, spec, cleaned, parent_id, attributes)
        if self.commit:
            self.session.commit()

        resolved = ResolvedEntity(kind=kind, id=entity.id, name=entity.name, was_created=created)
        self.stats.record(kind, created)
        if self.cache is not None:
            self.cache.put(resolved, cleaned, parent_id)
        return resolved

    def _find_or_create(
        self,
        kind: EntityKind,
        spec: KindSpec,
        name: str,
        parent_id: str | None,
        attributes: dict[str, Any],
    ) -> tuple[Any, bool]:
        attempts = 0
        slug_floor = 1
        while True:
            attempts += 1
            existing = find_active_by_name(self.session, kind, name, parent_id)
            if existing is not None:
                self._refresh_on_hit(kind, existing, attributes)
                return existing, False

            slug_counter = None
            values = self._creation_values(spec, name, parent_id, attributes)
            if spec.has_slug:
                values["slug"], slug_counter = self.allocate_slug(kind, name, slug_floor)

            try:
                with self.session.begin_nested():
                    entity = spec.model(**values)
                    self.session.add(entity)
            except IntegrityError as e:
                winner = find_active_by_name(self.session, kind, name, parent_id)
                if winner is not None:
                    logger.info(
                        f"Lost create race for {spec.label} '{name}', using {winner.id}"
                    )
                    return winner, False
                if slug_counter is not None and slug_taken(self.session, kind, values["slug"]):
                    logger.info(
                        f"Slug '{values['slug']}' was taken concurrently, trying next suffix"
                    )
                    slug_floor = slug_counter + 1
                    continue
                if attempts >= self.max_attempts:
                    raise ConflictError(
                        f"Could not create {spec.label} '{name}' after {attempts} attempts",
                        {"kind": kind.value, "name": name},
                    ) from e
                logger.warning(
                    f"Unique violation creating {spec.label} '{name}' "
                    f"(attempt {attempts}/{self.max_attempts}), retrying"
                )
                continue
            except SQLAlchemyError as e:
                logger.error(f"Database error creating {spec.label} '{name}': {e}", exc_info=True)
                raise

            logger.info(f"Created {spec.label} '{entity.name}' ({entity.id})")
            return entity, True

    def allocate_slug(self, kind: EntityKind, name: str, start: int = 1) -> tuple[str, int]:
        return allocate_slug(
            self.session, kind, name, start, max_attempts=self.slug_max_attempts
        )

    def _creation_values(
        self,
        spec: KindSpec,
        name: str,
        parent_id: str | None,
        attributes: dict[str, Any],
    ) -> dict[str, Any]:
        columns = spec.model.__table__.columns
        values = {
            key: value
            for key, value in attributes.items()
            if key in columns and value not in (None, "")
        }
        values.update(
            name=title_case(name),
            status=spec.active_status,
            created_by=self.actor,
            updated_by=self.actor,
        )
        if spec.parent_attr is not None:
            values[spec.parent_attr] = parent_id
        return values

    def _refresh_on_hit(self, kind: EntityKind, entity: Any, attributes: dict[str, Any]) -> None:
        logo = attributes.get("logo")
        if kind is EntityKind.BRAND and logo and logo != entity.logo:
            entity.logo = logo
            entity.updated_by = self.actor
            self.session.flush()

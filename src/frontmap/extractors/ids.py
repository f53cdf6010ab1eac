"""Run-wide entity ID uniqueness."""

import secrets

from ..logging_config import get_logger
from ..models import BaseEntity

logger = get_logger(__name__)


def collision_suffix() -> str:
    """Random 12-hex suffix appended to a colliding ID."""
    return secrets.token_hex(6)


def ensure_unique_ids(entities: list[BaseEntity]) -> list[BaseEntity]:
    """
    Make entity IDs unique across a run.

    The first occurrence of an ID keeps it; every later occurrence is
    renamed to ``<id>_<12 hex>``. Entities are modified in place and the
    same list is returned.
    """
    seen: set[str] = set()
    for entity in entities:
        if entity.id not in seen:
            seen.add(entity.id)
            continue
        original = entity.id
        renamed = f"{original}_{collision_suffix()}"
        while renamed in seen:
            renamed = f"{original}_{collision_suffix()}"
        entity.id = renamed
        seen.add(renamed)
        logger.warning(f"Duplicate entity ID {original} in {entity.file}, renamed to {renamed}")
    return entities

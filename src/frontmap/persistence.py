"""JSON snapshots of base and enriched entities.

Both snapshots are UTF-8 JSON arrays written with two-space indentation.
Relative paths are resolved against the project root. Read and write
errors surface as ``PersistenceFailure``; they are fatal for a run.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Optional

from .exceptions import PersistenceFailure
from .logging_config import get_logger
from .models import ENTITY_KINDS, BaseEntity, EnrichedEntity

logger = get_logger(__name__)

REQUIRED_FIELDS = ("id", "type", "file", "loc", "rawName")


def resolve_path(path: Path | str, root: Optional[Path | str] = None) -> Path:
    path = Path(path)
    if not path.is_absolute() and root is not None:
        path = Path(root) / path
    return path


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise PersistenceFailure(path, f"cannot read: {e}")
    except json.JSONDecodeError as e:
        raise PersistenceFailure(path, f"invalid JSON: {e}")


def _write_json(path: Path, data: Any) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise PersistenceFailure(path, f"cannot write: {e}")
    return path


def load_entities(path: Path | str, root: Optional[Path | str] = None) -> list[dict]:
    """
    Read a base snapshot as raw records.

    Raises:
        PersistenceFailure: If the file is missing, unreadable or not a JSON array
    """
    resolved = resolve_path(path, root)
    data = _read_json(resolved)
    if not isinstance(data, list):
        raise PersistenceFailure(resolved, "snapshot is not a JSON array")
    logger.info(f"Loaded {len(data)} entities from {resolved}")
    return data


def validate_entities(records: Iterable[Any]) -> list[BaseEntity]:
    """Keep records with every required field and a known type; warn about the rest."""
    valid: list[BaseEntity] = []
    dropped = 0
    for record in records:
        if not isinstance(record, dict) or not all(record.get(key) for key in REQUIRED_FIELDS):
            entity_id = record.get("id", "unknown") if isinstance(record, dict) else "unknown"
            logger.warning(f"Entity {entity_id} is missing required fields")
            dropped += 1
            continue
        if record["type"] not in ENTITY_KINDS:
            logger.warning(f"Entity {record['id']} has unknown type '{record['type']}'")
            dropped += 1
            continue
        try:
            valid.append(BaseEntity.from_dict(record))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Entity {record['id']} is malformed: {e}")
            dropped += 1

    if dropped:
        logger.warning(f"Dropped {dropped} invalid entities")
    return valid


def load_enriched_map(path: Path | str, root: Optional[Path | str] = None) -> dict[str, EnrichedEntity]:
    """
    Prior enriched snapshot keyed by entity ID.

    A missing file is an empty map. An unreadable or malformed one is logged
    and treated as empty so the run relabels instead of failing.
    """
    resolved = resolve_path(path, root)
    if not resolved.exists():
        logger.info(f"No enriched snapshot at {resolved}, labeling from scratch")
        return {}
    try:
        data = _read_json(resolved)
    except PersistenceFailure as e:
        logger.warning(f"Ignoring prior enriched snapshot: {e.reason}")
        return {}
    if not isinstance(data, list):
        logger.warning(f"Ignoring prior enriched snapshot {resolved}: not a JSON array")
        return {}

    enriched: dict[str, EnrichedEntity] = {}
    for record in data:
        if not isinstance(record, dict) or not record.get("id"):
            continue
        try:
            enriched[record["id"]] = EnrichedEntity.from_dict(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping prior record {record.get('id')}: {e}")
    logger.info(f"Loaded {len(enriched)} prior enriched entities")
    return enriched


def save_entities(entities: Iterable[EnrichedEntity], path: Path | str, root: Optional[Path | str] = None) -> Path:
    """
    Write the enriched snapshot in the given order.

    Raises:
        PersistenceFailure: If the file cannot be written
    """
    records = [entity.to_dict() for entity in entities]
    resolved = _write_json(resolve_path(path, root), records)
    logger.info(f"Saved {len(records)} enriched entities to {resolved}")
    return resolved


def save_base_entities(entities: Iterable[BaseEntity], path: Path | str, root: Optional[Path | str] = None) -> Path:
    """
    Write the base snapshot in the given order.

    Raises:
        PersistenceFailure: If the file cannot be written
    """
    records = [BaseEntity.to_dict(entity) for entity in entities]
    resolved = _write_json(resolve_path(path, root), records)
    logger.info(f"Saved {len(records)} entities to {resolved}")
    return resolved

"""Data models for extracted and enriched entities.

Field names on the wire follow the snapshot format consumed downstream
(``rawName``, ``codeMd5``, upper-case reference lists); the Python
attributes use snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal, Optional

EntityType = Literal["component", "function", "class", "variable"]

ENTITY_KINDS: dict[str, str] = {
    "component": "Component",
    "function": "Function",
    "class": "Class",
    "variable": "Variable",
}


@dataclass(frozen=True)
class Location:
    """1-based inclusive line range of a declaration."""

    start: int
    end: int

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_value(cls, value: Any) -> Location:
        # Single-line form written by older snapshots
        if isinstance(value, int):
            return cls(start=value, end=value)
        return cls(start=int(value["start"]), end=int(value["end"]))


@dataclass
class BaseEntity:
    """A named, exported declaration extracted from one file.

    Recomputed on every extraction pass.
    """

    id: str
    type: EntityType
    file: str
    loc: Location
    raw_name: str
    is_ddd: bool = False
    is_workspace: bool = False
    code_md5: str = ""

    @property
    def name(self) -> str:
        """Name part of the ``Kind:Name`` identifier."""
        return self.id.split(":", 1)[1] if ":" in self.id else self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "file": self.file,
            "loc": self.loc.to_dict(),
            "rawName": self.raw_name,
            "isDDD": self.is_ddd,
            "isWorkspace": self.is_workspace,
            "codeMd5": self.code_md5,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaseEntity:
        return cls(
            id=data["id"],
            type=data["type"],
            file=data["file"],
            loc=Location.from_value(data["loc"]),
            raw_name=data["rawName"],
            is_ddd=bool(data.get("isDDD", False)),
            is_workspace=bool(data.get("isWorkspace", False)),
            code_md5=data.get("codeMd5") or "",
        )


@dataclass
class StaticAnalysisResult:
    """Reference facts and annotation text for one entity."""

    imports: list[str] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    emits: list[str] = field(default_factory=list)
    template_components: list[str] = field(default_factory=list)
    annotation: str = ""
    original_annotation: str = ""


@dataclass
class LabelResult:
    """Output of the external labeler. Any field may be missing."""

    summary: Optional[str] = None
    tags: Optional[list[str]] = None
    project_desc: Optional[str] = None
    annotation: Optional[str] = None
    publish_tag: Optional[str] = None


@dataclass
class EnrichedEntity(BaseEntity):
    """The durable, persisted form of an entity.

    Serialization always writes every field: strings default to ``""`` and
    lists to ``[]``.
    """

    imports: list[str] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    emits: list[str] = field(default_factory=list)
    template_components: list[str] = field(default_factory=list)
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    project_desc: str = ""
    publish_tag: str = ""
    annotation: str = ""
    annotation_md5: str = ""

    @classmethod
    def from_base(cls, entity: BaseEntity, **fields: Any) -> EnrichedEntity:
        return cls(
            id=entity.id,
            type=entity.type,
            file=entity.file,
            loc=entity.loc,
            raw_name=entity.raw_name,
            is_ddd=entity.is_ddd,
            is_workspace=entity.is_workspace,
            code_md5=entity.code_md5,
            **fields,
        )

    def copy(self, **changes: Any) -> EnrichedEntity:
        fields: dict[str, Any] = {
            "imports": list(self.imports),
            "calls": list(self.calls),
            "emits": list(self.emits),
            "template_components": list(self.template_components),
            "tags": list(self.tags),
        }
        fields.update(changes)
        return replace(self, **fields)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "IMPORTS": list(self.imports or []),
                "CALLS": list(self.calls or []),
                "EMITS": list(self.emits or []),
                "TEMPLATE_COMPONENTS": list(self.template_components or []),
                "summary": self.summary or "",
                "tags": list(self.tags or []),
                "projectDesc": self.project_desc or "",
                "publishTag": self.publish_tag or "",
                "ANNOTATION": self.annotation or "",
                "annotationMd5": self.annotation_md5 or "",
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnrichedEntity:
        base = BaseEntity.from_dict(data)
        return cls.from_base(
            base,
            imports=list(data.get("IMPORTS") or []),
            calls=list(data.get("CALLS") or []),
            emits=list(data.get("EMITS") or []),
            template_components=list(data.get("TEMPLATE_COMPONENTS") or []),
            summary=data.get("summary") or "",
            tags=list(data.get("tags") or []),
            project_desc=data.get("projectDesc") or "",
            publish_tag=data.get("publishTag") or "",
            annotation=data.get("ANNOTATION") or "",
            annotation_md5=data.get("annotationMd5") or "",
        )


def make_entity_id(entity_type: str, name: str) -> str:
    """Build a ``Kind:Name`` identifier."""
    return f"{ENTITY_KINDS[entity_type]}:{name}"

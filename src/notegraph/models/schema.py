"""Data models for notegraph."""

import datetime
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from notegraph.exceptions import ErrorCode, ValidationError


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite drops tzinfo on round-trip, so values read back from the
    database are naive and are assumed to be UTC.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate a random UUID4 string identifier."""
    return str(uuid.uuid4())


class NoteLinkType(str, Enum):
    """Semantic types of directed links between notes."""

    RELATES_TO = "RELATES_TO"
    REFERENCES = "REFERENCES"
    FOLLOWS_FROM = "FOLLOWS_FROM"
    CONTRADICTS = "CONTRADICTS"
    EXTENDS = "EXTENDS"
    SUMMARIZES = "SUMMARIZES"
    IMPLEMENTS = "IMPLEMENTS"
    INSPIRED_BY = "INSPIRED_BY"
    PARENT_OF = "PARENT_OF"
    CHILD_OF = "CHILD_OF"
    SIMILAR_TO = "SIMILAR_TO"
    PREREQUISITES = "PREREQUISITES"
    DERIVED_FROM = "DERIVED_FROM"
    UPDATES = "UPDATES"
    OBSOLETES = "OBSOLETES"
    CITES = "CITES"
    MENTIONS = "MENTIONS"

    @classmethod
    def from_string(cls, name: Optional[str]) -> Optional["NoteLinkType"]:
        """Parse a link type name case-insensitively.

        Returns None for None; raises ValidationError for unknown names.
        """
        if name is None:
            return None
        try:
            return cls(name.strip().upper())
        except ValueError:
            raise ValidationError(
                f"Unknown link type: {name}",
                field="link_type",
                value=name,
                code=ErrorCode.INVALID_LINK_TYPE,
            )

    @property
    def is_hierarchical(self) -> bool:
        return self in (NoteLinkType.PARENT_OF, NoteLinkType.CHILD_OF)

    @property
    def is_sequential(self) -> bool:
        return self in (
            NoteLinkType.FOLLOWS_FROM,
            NoteLinkType.PREREQUISITES,
            NoteLinkType.UPDATES,
        )

    @property
    def is_content_based(self) -> bool:
        return self in (
            NoteLinkType.SIMILAR_TO,
            NoteLinkType.EXTENDS,
            NoteLinkType.SUMMARIZES,
            NoteLinkType.DERIVED_FROM,
        )

    @property
    def is_conflicting(self) -> bool:
        return self in (NoteLinkType.CONTRADICTS, NoteLinkType.OBSOLETES)

    @property
    def is_symmetric(self) -> bool:
        """True when the relation reads the same in both directions."""
        return self.inverse() is self

    def inverse(self) -> "NoteLinkType":
        """Get the type of the reverse edge used for bidirectional links.

        Types without a precise counterpart fall back to RELATES_TO.
        """
        return _INVERSE_TYPES.get(self, NoteLinkType.RELATES_TO)

    def default_weight(self) -> int:
        """Conventional weight for a fresh link of this type (1-10 scale)."""
        return _DEFAULT_WEIGHTS.get(self, 1)


_INVERSE_TYPES = {
    NoteLinkType.PARENT_OF: NoteLinkType.CHILD_OF,
    NoteLinkType.CHILD_OF: NoteLinkType.PARENT_OF,
    NoteLinkType.FOLLOWS_FROM: NoteLinkType.PREREQUISITES,
    NoteLinkType.PREREQUISITES: NoteLinkType.FOLLOWS_FROM,
    NoteLinkType.UPDATES: NoteLinkType.OBSOLETES,
    NoteLinkType.OBSOLETES: NoteLinkType.UPDATES,
    NoteLinkType.CITES: NoteLinkType.MENTIONS,
}

_DEFAULT_WEIGHTS = {
    NoteLinkType.EXTENDS: 3,
    NoteLinkType.CONTRADICTS: 2,
    NoteLinkType.SUMMARIZES: 4,
    NoteLinkType.IMPLEMENTS: 3,
    NoteLinkType.PARENT_OF: 5,
}


class TagMatchMode(str, Enum):
    """How a list of tag names filters a note set."""

    ANY = "any"  # note has at least one of the tags
    ALL = "all"  # note has every tag

    @classmethod
    def parse(cls, value: Any) -> "TagMatchMode":
        """Parse 'any'/'all' (case-insensitive); anything else means ANY."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().lower() == "all":
            return cls.ALL
        return cls.ANY


class Group(BaseModel):
    """A named, hierarchical container for notes and group-scoped tags."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the group")
    user_id: str = Field(..., description="Owner of the group")
    name: str = Field(..., description="Name, unique per user")
    description: Optional[str] = Field(default=None)
    color: Optional[str] = Field(default=None, description="Hex colour like #FF5722")
    icon: Optional[str] = Field(default=None, description="Icon class like 'fas fa-seedling'")
    parent_id: Optional[str] = Field(default=None, description="Parent group, None for roots")
    sort_order: int = Field(default=0)
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        if not v.strip():
            raise ValueError("Group name cannot be empty")
        return v.strip()

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class Tag(BaseModel):
    """A label attachable to many notes, global or scoped to one group."""

    id: str = Field(default_factory=generate_id)
    user_id: str = Field(...)
    name: str = Field(..., description="Tag name")
    color: Optional[str] = Field(default=None)
    is_key: bool = Field(default=False, description="Highlighted 'key' tag")
    group_id: Optional[str] = Field(default=None, description="Owning group, None = global")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        if not v.strip():
            raise ValueError("Tag name cannot be empty")
        return v.strip()

    @property
    def is_global(self) -> bool:
        return self.group_id is None

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


class NoteAttachment(BaseModel):
    """Metadata of a file attached to a note. Bytes live elsewhere."""

    id: str = Field(default_factory=generate_id)
    note_id: str = Field(...)
    original_filename: str = Field(...)
    filename: str = Field(..., description="Stored (unique) file name")
    file_path: str = Field(...)
    file_size: int = Field(..., ge=0)
    mime_type: str = Field(...)
    uploaded_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"extra": "forbid", "frozen": True}


class Note(BaseModel):
    """A unit of content belonging to exactly one group."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    user_id: str = Field(...)
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Content of the note")
    group_id: Optional[str] = Field(default=None)
    tags: List[Tag] = Field(default_factory=list)
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @property
    def tag_names(self) -> List[str]:
        return [tag.name for tag in self.tags]


class NoteLink(BaseModel):
    """A directed, typed, weighted edge between two notes."""

    id: str = Field(default_factory=generate_id)
    source_id: str = Field(..., description="ID of the source note")
    target_id: str = Field(..., description="ID of the target note")
    link_type: NoteLinkType = Field(default=NoteLinkType.RELATES_TO)
    weight: int = Field(default=1, description="Conventionally 1-10")
    is_bidirectional: bool = Field(default=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @property
    def is_strong(self) -> bool:
        return self.weight >= 7

    @property
    def is_weak(self) -> bool:
        return self.weight <= 3

    def involves(self, note_id: str) -> bool:
        return note_id in (self.source_id, self.target_id)

    def other_end(self, note_id: str) -> str:
        """Return the note on the opposite end of this link."""
        if note_id == self.source_id:
            return self.target_id
        if note_id == self.target_id:
            return self.source_id
        raise ValueError(f"Note {note_id} is not part of this link")


# ---------------------------------------------------------------------------
# Read-only view records assembled by the graph query service
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LinkSummary:
    """One side of a note's link list as shown in a node view."""

    note_id: str
    title: str
    link_type: NoteLinkType
    weight: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "note_id": self.note_id,
            "title": self.title,
            "type": self.link_type.value,
            "weight": self.weight,
        }


@dataclass
class NodeView:
    """Display record for a single note in the graph."""

    id: str
    title: str
    content: str
    group_id: Optional[str]
    tags: List[str]
    outgoing: List[LinkSummary]
    incoming: List[LinkSummary]
    total_links: int
    average_weight: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "group_id": self.group_id,
            "tags": list(self.tags),
            "outgoing_links": [s.to_dict() for s in self.outgoing],
            "incoming_links": [s.to_dict() for s in self.incoming],
            "total_links": self.total_links,
            "average_weight": self.average_weight,
        }


@dataclass(frozen=True)
class HubNode:
    """A highly connected note."""

    id: str
    title: str
    degree: int


@dataclass
class GraphStats:
    """Aggregate statistics over a user's link graph."""

    link_type_distribution: Dict[str, int]
    hubs: List[HubNode]
    orphan_count: int
    total_notes: int
    total_links: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hubs"] = [asdict(h) for h in self.hubs]
        return data


@dataclass(frozen=True)
class GraphNode:
    id: str
    title: str
    degree: int
    size: int


@dataclass(frozen=True)
class GraphEdge:
    id: str
    source: str
    target: str
    link_type: NoteLinkType
    weight: int
    bidirectional: bool
    stroke_width: int
    opacity: float


@dataclass
class GraphData:
    """Nodes and edges of a filtered subgraph, ready for visualisation."""

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [asdict(n) for n in self.nodes],
            "links": [
                {**asdict(e), "link_type": e.link_type.value} for e in self.edges
            ],
        }

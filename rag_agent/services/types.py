from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

# Closed set of values the vector index accepts as metadata.
MetadataValue = Union[str, int, float, bool, None]
Metadata = Dict[str, MetadataValue]


def is_metadata_value(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def invalid_metadata_keys(metadata: Mapping[str, Any]) -> List[str]:
    return [key for key, value in metadata.items() if not is_metadata_value(value)]


@dataclass(frozen=True)
class RepositoryKey:
    owner: str
    repo: str

    @property
    def name(self) -> str:
        return f"{self.owner}-{self.repo}"


class ChangeStatus(str, Enum):
    CHANGES = "changes"
    NO_CHANGES = "no_changes"
    UNAVAILABLE = "unavailable"


@dataclass
class FileChangeSet:
    created: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    status: ChangeStatus = ChangeStatus.NO_CHANGES

    @classmethod
    def unavailable(cls) -> "FileChangeSet":
        return cls(status=ChangeStatus.UNAVAILABLE)

    @property
    def is_unavailable(self) -> bool:
        return self.status == ChangeStatus.UNAVAILABLE

    def all_paths(self) -> List[str]:
        return [*self.created, *self.modified, *self.deleted]


@dataclass
class FileRecord:
    path: str
    content: str


@dataclass
class VectorEntry:
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "score": self.score}
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out

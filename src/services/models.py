import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from services.settings import FieldNames, LEAF_WORK_ITEM_TYPES


class WorkItemDataError(ValueError):
    """Base class for work item content that cannot be interpreted"""
    pass


class MalformedRelationReferenceError(WorkItemDataError):
    """A relation URL does not end in a work item id"""
    pass


class ReportingParseError(WorkItemDataError):
    """A four-cell reporting row holds an unparseable date or number"""
    pass


@dataclass(frozen=True)
class Relation:
    rel: str
    url: str

    @property
    def target_id(self) -> int:
        """Id of the linked work item, taken from the last segment of the URL"""
        segment = self.url.split("/")[-1]
        if not re.fullmatch(r"[0-9]+", segment):
            raise MalformedRelationReferenceError(
                f"Relation reference '{self.url}' does not end in a work item id"
            )
        return int(segment)


@dataclass
class WorkItem:
    id: int
    work_item_type: str
    title: str = ""
    assigned_to: Optional[str] = None
    remaining_work: Optional[float] = None
    relations: List[Relation] = field(default_factory=list)
    reporting_info: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "WorkItem":
        """Build a WorkItem from an Azure DevOps REST work item payload"""
        fields = payload.get("fields") or {}

        # System.AssignedTo is an identity object in REST responses
        assigned_to = fields.get(FieldNames.ASSIGNED_TO)
        if isinstance(assigned_to, dict):
            assigned_to = assigned_to.get("uniqueName") or ""

        remaining = fields.get(FieldNames.REMAINING)

        return cls(
            id=int(payload["id"]),
            work_item_type=fields.get(FieldNames.WORK_ITEM_TYPE, ""),
            title=fields.get(FieldNames.TITLE) or "",
            assigned_to=assigned_to,
            remaining_work=float(remaining) if remaining is not None else None,
            relations=[
                Relation(rel=relation.get("rel", ""), url=relation.get("url", ""))
                for relation in payload.get("relations") or []
            ],
            reporting_info=fields.get(FieldNames.REPORTING_INFO),
        )

    @property
    def is_leaf(self) -> bool:
        return self.work_item_type in LEAF_WORK_ITEM_TYPES

    @property
    def alias(self) -> str:
        """Upper-cased local part of the assignee's unique name, empty when unassigned"""
        if self.assigned_to is None:
            return ""
        return self.assigned_to.split("@")[0].upper()

    def relations_of(self, rel: str) -> List[Relation]:
        return [relation for relation in self.relations if relation.rel == rel]


@dataclass(frozen=True)
class Team:
    name: str
    members: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportingLogLine:
    date: date
    alias: str
    hours: Decimal
    comment: str


@dataclass(frozen=True)
class TaskDetails:
    id: int
    title: str
    remaining: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "remaining": self.remaining}


@dataclass
class RemainingByTeamLine:
    team: str
    remaining: float
    tasks: Optional[List[TaskDetails]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team": self.team,
            "remaining": self.remaining,
            "tasks": [task.to_dict() for task in self.tasks] if self.tasks is not None else None,
        }


@dataclass
class ReportingByTeamLine:
    team_label: str
    total_hours: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"teamLabel": self.team_label, "totalHours": float(self.total_hours)}

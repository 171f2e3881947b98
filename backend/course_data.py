"""
Course data normalizer
Walks an ALM JSON:API document (`data` + `included`) and flattens it into a
template-ready CourseRecord, filling defaults for anything missing.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from alm_client import to_eds_instance_id


_MISSING = object()


@dataclass
class CourseModule:
    id: str
    course_id: str
    name: str
    type: str
    content_type: str
    duration: str
    is_completed: bool

    @property
    def status(self) -> str:
        return "completed" if self.is_completed else "in-progress"

    @property
    def status_text(self) -> str:
        return "Last visited" if self.is_completed else "In Progress"

    @property
    def status_icon(self) -> str:
        return "✓" if self.is_completed else "⏱️"


@dataclass
class Prerequisite:
    id: str
    name: str
    type: str


@dataclass
class JobAid:
    id: str
    name: str
    description: str


@dataclass
class Author:
    name: str
    email: str


@dataclass
class InstanceSummary:
    id: str
    name: str
    state: str
    enrollment_deadline: str
    completion_deadline: str


@dataclass
class CourseRecord:
    course_id: str
    instance_id: Optional[str]
    title: str
    description: str
    overview: str
    course_type: str
    duration: str
    level: str
    skills: str
    enrollment_count: int = 0
    rating_avg: float = 0
    rating_count: int = 0
    image_url: str = ""
    lo_format: str = "Self-paced"
    core_modules: List[CourseModule] = field(default_factory=list)
    prerequisites: List[Prerequisite] = field(default_factory=list)
    job_aids: List[JobAid] = field(default_factory=list)
    authors: List[Author] = field(default_factory=list)
    instances: List[InstanceSummary] = field(default_factory=list)
    timestamp: str = ""

    @property
    def completed_count(self) -> int:
        return sum(1 for m in self.core_modules if m.is_completed)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def safe_get(obj: Any, path: str, default: Any = "") -> Any:
    """
    Read a dotted path such as `attributes.localizedMetadata.0.name`.
    Numeric segments index into lists. Any missing step (or a None value)
    yields `default`.
    """
    current = obj
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key, _MISSING)
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return default
        if current is _MISSING or current is None:
            return default
    return current


def format_duration(seconds: Any) -> str:
    """Seconds to `1h 30m`, `2h` or `45m`; falsy input is `N/A`."""
    if not seconds:
        return "N/A"
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"
    return f"{minutes}m"


def _included(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    return document.get("included") or []


def _find(included: List[Dict[str, Any]], item_id: str, item_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    for item in included:
        if item.get("id") == item_id and (item_type is None or item.get("type") == item_type):
            return item
    return None


def _relationship_refs(resource: Dict[str, Any], name: str) -> List[Dict[str, Any]]:
    data = safe_get(resource, f"relationships.{name}.data", [])
    if isinstance(data, dict):
        return [data]
    return data or []


def _metadata(attributes: Dict[str, Any], fallback: Dict[str, str]) -> Dict[str, Any]:
    localized = attributes.get("localizedMetadata") or []
    if localized and localized[0]:
        return localized[0]
    return fallback


def extract_skills(document: Dict[str, Any]) -> List[str]:
    return [
        safe_get(item, "attributes.name")
        for item in _included(document)
        if item.get("type") == "skill"
    ]


def extract_authors(document: Dict[str, Any]) -> List[Author]:
    return [
        Author(
            name=safe_get(item, "attributes.name", "Unknown Author") or "Unknown Author",
            email=safe_get(item, "attributes.email", ""),
        )
        for item in _included(document)
        if item.get("type") == "user" and item.get("attributes")
    ]


def extract_instances(document: Dict[str, Any]) -> List[InstanceSummary]:
    return [
        InstanceSummary(
            id=item.get("id", ""),
            name=safe_get(item, "attributes.localizedMetadata.0.name", "Unnamed Instance"),
            state=safe_get(item, "attributes.state", "Unknown"),
            enrollment_deadline=safe_get(item, "attributes.enrollmentDeadline", "No deadline"),
            completion_deadline=safe_get(item, "attributes.completionDeadline", "No deadline"),
        )
        for item in _included(document)
        if item.get("type") == "learningObjectInstance"
    ]


def _completed_resource_ids(included: List[Dict[str, Any]]) -> set:
    """Resource ids the enrolled learner has passed or fully progressed."""
    completed = set()
    for item in included:
        if item.get("type") != "learningObjectResourceGrade":
            continue
        attributes = item.get("attributes") or {}
        progress = attributes.get("progressPercent") or 0
        if attributes.get("hasPassed") or progress >= 100:
            resource_id = safe_get(item, "relationships.loResource.data.id", None)
            if resource_id:
                completed.add(resource_id)
    return completed


def _select_instance(document: Dict[str, Any], instance_id: Optional[str]) -> Optional[Dict[str, Any]]:
    included = _included(document)
    refs = _relationship_refs(document.get("data") or {}, "instances")
    if not refs:
        return None

    if instance_id:
        wanted = to_eds_instance_id(instance_id)
        for ref in refs:
            if to_eds_instance_id(ref.get("id", "")) == wanted:
                match = _find(included, ref.get("id"), "learningObjectInstance")
                if match:
                    return match

    return _find(included, refs[0].get("id"), "learningObjectInstance")


def extract_core_modules(document: Dict[str, Any], instance_id: Optional[str] = None) -> List[CourseModule]:
    course = document.get("data") or {}
    included = _included(document)
    instance = _select_instance(document, instance_id)
    if not instance:
        return []

    completed = _completed_resource_ids(included)
    modules = []
    for ref in _relationship_refs(instance, "loResources"):
        resource = _find(included, ref.get("id"))
        if not resource or not resource.get("attributes"):
            continue
        attributes = resource["attributes"]
        metadata = _metadata(attributes, {"name": attributes.get("name") or "Module"})

        module_type = attributes.get("loFormat") or "Self-paced"
        if module_type.lower() == "self-paced":
            duration = "Self-paced"
        else:
            duration = format_duration(attributes.get("desiredDuration") or attributes.get("duration") or 900)

        modules.append(CourseModule(
            id=ref.get("id"),
            course_id=course.get("id", ""),
            name=metadata.get("name") or "Module",
            type=module_type,
            content_type=attributes.get("contentType") or "SCORM2004",
            duration=duration,
            is_completed=ref.get("id") in completed,
        ))
    return modules


def extract_prerequisites(document: Dict[str, Any]) -> List[Prerequisite]:
    included = _included(document)
    prerequisites = []
    for ref in _relationship_refs(document.get("data") or {}, "prerequisiteLOs"):
        item = _find(included, ref.get("id"))
        if not item or not item.get("attributes"):
            continue
        attributes = item["attributes"]
        metadata = _metadata(attributes, {"name": attributes.get("name") or "Prerequisite Course"})
        prerequisites.append(Prerequisite(
            id=ref.get("id"),
            name=metadata.get("name") or "Prerequisite Course",
            type=attributes.get("loFormat") or "Self-paced",
        ))
    return prerequisites


def extract_job_aids(document: Dict[str, Any]) -> List[JobAid]:
    included = _included(document)
    job_aids = []
    for ref in _relationship_refs(document.get("data") or {}, "supplementaryLOs"):
        item = _find(included, ref.get("id"))
        if not item or not item.get("attributes"):
            continue
        attributes = item["attributes"]
        if attributes.get("loType") != "jobAid":
            continue
        metadata = _metadata(attributes, {"name": attributes.get("name") or "Job Aid", "description": ""})
        job_aids.append(JobAid(
            id=ref.get("id"),
            name=metadata.get("name") or "Job Aid",
            description=metadata.get("description") or "Job aid description",
        ))
    return job_aids


def _course_level(document: Dict[str, Any], skills: List[str]) -> str:
    level = safe_get(document.get("data") or {}, "attributes.skillLevel", "N/A")
    if level == "N/A" and skills:
        skill_level = next((i for i in _included(document) if i.get("type") == "skillLevel"), None)
        if skill_level:
            level = safe_get(skill_level, "attributes.name", "N/A")
    return level


def process_course_data(document: Dict[str, Any], course_id: str, instance_id: Optional[str] = None) -> CourseRecord:
    """Flatten an ALM learning-object document into a CourseRecord."""
    course = document.get("data") or {}
    skills = extract_skills(document)

    return CourseRecord(
        course_id=course_id,
        instance_id=instance_id,
        title=safe_get(course, "attributes.localizedMetadata.0.name") or "Untitled Course",
        description=safe_get(course, "attributes.localizedMetadata.0.description") or "No description available",
        overview=safe_get(course, "attributes.localizedMetadata.0.overview") or "No overview available",
        course_type="Learning Program" if course.get("type") == "learningProgram" else "Course",
        duration=format_duration(safe_get(course, "attributes.duration", 0)),
        level=_course_level(document, skills),
        skills=", ".join(s for s in skills if s) or "No skills specified",
        enrollment_count=safe_get(course, "attributes.enrollmentCount", 0),
        rating_avg=safe_get(course, "attributes.rating.averageRating", 0),
        rating_count=safe_get(course, "attributes.rating.ratingsCount", 0),
        image_url=safe_get(course, "attributes.imageUrl", ""),
        lo_format=safe_get(course, "attributes.loFormat", "Self-paced"),
        core_modules=extract_core_modules(document, instance_id),
        prerequisites=extract_prerequisites(document),
        job_aids=extract_job_aids(document),
        authors=extract_authors(document),
        instances=extract_instances(document),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )

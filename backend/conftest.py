import copy

import httpx
import pytest


COURSE_DOCUMENT = {
    "data": {
        "id": "course:7235188",
        "type": "learningObject",
        "attributes": {
            "duration": 5400,
            "enrollmentCount": 42,
            "imageUrl": "https://cdn.example.com/course.png",
            "loFormat": "Blended",
            "rating": {"averageRating": 4.5, "ratingsCount": 8},
            "localizedMetadata": [{
                "name": "Intro to <Data> & Analytics",
                "description": "Learn \"data\" basics",
                "overview": "Overview text",
            }],
        },
        "relationships": {
            "instances": {"data": [
                {"id": "course:7235188_9001", "type": "learningObjectInstance"},
                {"id": "course:7235188_9002", "type": "learningObjectInstance"},
            ]},
            "prerequisiteLOs": {"data": [{"id": "course:111", "type": "learningObject"}]},
            "supplementaryLOs": {"data": [
                {"id": "jobAid:55", "type": "learningObject"},
                {"id": "course:66", "type": "learningObject"},
            ]},
        },
    },
    "included": [
        {
            "id": "course:7235188_9001",
            "type": "learningObjectInstance",
            "attributes": {
                "state": "Active",
                "enrollmentDeadline": "2026-12-01",
                "localizedMetadata": [{"name": "Default Instance"}],
            },
            "relationships": {"loResources": {"data": [
                {"id": "res:1", "type": "learningObjectResource"},
                {"id": "res:2", "type": "learningObjectResource"},
            ]}},
        },
        {
            "id": "course:7235188_9002",
            "type": "learningObjectInstance",
            "attributes": {"state": "Retired", "localizedMetadata": [{"name": "Spring cohort"}]},
            "relationships": {"loResources": {"data": [
                {"id": "res:3", "type": "learningObjectResource"},
            ]}},
        },
        {
            "id": "res:1",
            "type": "learningObjectResource",
            "attributes": {
                "loFormat": "Self-paced",
                "contentType": "VIDEO",
                "localizedMetadata": [{"name": "Welcome video"}],
            },
        },
        {
            "id": "res:2",
            "type": "learningObjectResource",
            "attributes": {"loFormat": "Virtual Classroom", "desiredDuration": 3600, "name": "Live session"},
        },
        {
            "id": "res:3",
            "type": "learningObjectResource",
            "attributes": {"loFormat": "Classroom", "localizedMetadata": [{"name": "Workshop"}]},
        },
        {
            "id": "grade:1",
            "type": "learningObjectResourceGrade",
            "attributes": {"hasPassed": True, "progressPercent": 100},
            "relationships": {"loResource": {"data": {"id": "res:1", "type": "learningObjectResource"}}},
        },
        {
            "id": "course:111",
            "type": "learningObject",
            "attributes": {"loFormat": "Activity", "localizedMetadata": [{"name": "Prereq course"}]},
        },
        {
            "id": "jobAid:55",
            "type": "learningObject",
            "attributes": {"loType": "jobAid", "localizedMetadata": [{"name": "Cheat sheet", "description": ""}]},
        },
        {
            "id": "course:66",
            "type": "learningObject",
            "attributes": {"loType": "course", "localizedMetadata": [{"name": "Not a job aid"}]},
        },
        {"id": "skill:1", "type": "skill", "attributes": {"name": "SQL"}},
        {"id": "skill:2", "type": "skill", "attributes": {"name": "Statistics"}},
        {"id": "skillLevel:1", "type": "skillLevel", "attributes": {"name": "Beginner"}},
        {"id": "user:1", "type": "user", "attributes": {"name": "Ada", "email": "ada@example.com"}},
    ],
}


@pytest.fixture
def course_document():
    return copy.deepcopy(COURSE_DOCUMENT)


def mock_client(handler) -> httpx.Client:
    """httpx client whose requests are answered by `handler(request)`."""
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def recorded():
    """List that handlers append requests to."""
    return []

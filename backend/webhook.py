"""
Request intake: ALM webhook payloads and course overlay paths, both reduced
to a (course id, instance id) pair.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)

TEST_CONNECTION_MESSAGE = "Test Connection"
OVERLAY_MARKER = "/overview/trainingId/"


class WebhookError(Exception):
    """Malformed request; carries the HTTP status to answer with"""

    status_code = 400


class NotOverlayPathError(WebhookError):
    status_code = 404


@dataclass
class CourseTarget:
    course_id: str
    instance_id: Optional[str] = None


def is_test_connection(params: Dict[str, Any]) -> bool:
    return params.get("message") == TEST_CONNECTION_MESSAGE


def _has_events(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("events"), list)


def find_webhook_data(params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Locate the `{events: [...]}` object in whatever shape the webhook
    delivered it: top level, JSON string body, object body, any nested
    property, or flattened into individual parameters.
    """
    webhook_data = None
    body = params.get("body")

    if isinstance(params.get("events"), list) and params["events"]:
        webhook_data = params
        logger.info("Found webhook payload: direct events array")
    elif isinstance(body, str) and body:
        try:
            parsed = json.loads(body)
        except ValueError as e:
            logger.warning("Failed to parse body as JSON: %s", e)
        else:
            if _has_events(parsed):
                webhook_data = parsed
                logger.info("Found webhook payload: JSON string in body")
    elif isinstance(body, dict) and body.get("events"):
        webhook_data = body
        logger.info("Found webhook payload: object in body")
    else:
        for key, value in params.items():
            if _has_events(value):
                webhook_data = value
                logger.info("Found webhook payload: in property '%s'", key)
                break

    if webhook_data is None and params.get("accountId"):
        if params.get("eventId") and params.get("eventName") and params.get("loId"):
            webhook_data = {
                "accountId": params["accountId"],
                "events": [{
                    "eventId": params["eventId"],
                    "eventName": params["eventName"],
                    "timestamp": params.get("timestamp") or datetime.now(timezone.utc).isoformat(),
                    "eventInfo": params.get("eventInfo") or "",
                    "data": {
                        "loId": params["loId"],
                        "loType": params.get("loType") or "course",
                    },
                }],
            }
            logger.info("Found webhook payload: reconstructed from individual parameters")

    return webhook_data


def target_from_event(event: Dict[str, Any]) -> CourseTarget:
    """Read the course (and optional instance) an ALM event refers to."""
    data = event.get("data") or {}
    lo_id = data.get("loId")
    if not lo_id:
        raise WebhookError("Missing loId in event data")

    # "learningProgram:123836" -> "123836"
    parts = str(lo_id).split(":")
    if len(parts) != 2:
        raise WebhookError(f"Invalid loId format: {lo_id}")
    if not parts[1]:
        raise WebhookError("Could not extract course ID from request")

    instance_id = data.get("instanceId")
    if instance_id:
        logger.info("Instance ID provided in ALM webhook: %s", instance_id)
    else:
        logger.info("No instance ID in ALM webhook - will publish all instances for this course")
    return CourseTarget(course_id=parts[1], instance_id=instance_id)


def parse_overlay_path(path: str) -> CourseTarget:
    """Read `/overview/trainingId/<id>[/trainingInstanceId/<instance>]`."""
    if not path.startswith("/"):
        path = "/" + path
    if OVERLAY_MARKER not in path:
        raise NotOverlayPathError(f"{path} is not a course overlay path")

    parts = [p for p in path.split("/") if p]
    if len(parts) < 3 or parts[0] != "overview" or parts[1] != "trainingId":
        raise WebhookError("Could not extract course ID from request")

    instance_id = None
    if len(parts) >= 5 and parts[3] == "trainingInstanceId":
        instance_id = parts[4]
    return CourseTarget(course_id=parts[2], instance_id=instance_id)


def parse_request(params: Dict[str, Any]) -> CourseTarget:
    """Resolve a webhook payload, or failing that an `__ow_path`, to a target."""
    webhook_data = find_webhook_data(params)
    if webhook_data and webhook_data.get("events"):
        logger.info("Processing webhook payload from ALM")
        logger.debug("Full ALM webhook payload: %s", json.dumps(webhook_data))
        return target_from_event(webhook_data["events"][0])

    path = params.get("__ow_path")
    if path:
        logger.info("Processing URL path: %s", path)
        return parse_overlay_path(path)

    logger.error("No valid webhook payload or URL path found; keys: %s", list(params.keys()))
    raise WebhookError("Missing webhook payload or URL path")

"""
ALM API client: fetches learning objects and their instances from the
Adobe Learning Manager primeapi and runs learner calls (enrollment, player).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx


logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://learningmanager.adobe.com/primeapi/v2"
USER_AGENT = "ALM-Course-Viewer/1.0"
JSON_API = "application/vnd.api+json"

COURSE_INCLUDES = ",".join([
    "instances.enrollment.loResourceGrades",
    "enrollment.loInstance.loResources.resources",
    "authors",
    "supplementaryLOs.instances.loResources.resources",
    "supplementaryResources",
    "prerequisiteLOs.enrollment",
    "instances.loResources.resources.room",
    "subLOs.instances.loResources",
    "skills.skillLevel.skill",
])
ENROLLMENT_INCLUDES = "enrollment.loResourceGrades,enrollment.loInstance.loResources.resources.room"

LO_TYPES = ("course", "learningProgram")


class ALMAPIError(Exception):
    """Raised when the ALM API answers with a non-2xx status or times out."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


@dataclass
class CourseInstance:
    id: str  # EDS form, e.g. "12495374-13216648"
    alm_id: str  # ALM form, e.g. "course:12495374_13216648"
    name: str
    state: str


def _create_client() -> httpx.Client:
    return httpx.Client(
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(30.0, connect=10.0),
        follow_redirects=True,
    )


def to_eds_instance_id(alm_instance_id: str) -> str:
    """Convert `course:12495374_13216648` to `12495374-13216648`."""
    if ":" in alm_instance_id and "_" in alm_instance_id:
        return alm_instance_id.split(":", 1)[1].replace("_", "-", 1)
    return alm_instance_id


def _lo_candidates(course_id: str) -> List[str]:
    # A prefixed id is used as-is, a bare numeric id is tried as course first.
    if ":" in course_id:
        return [course_id]
    return [f"{lo_type}:{course_id}" for lo_type in LO_TYPES]


class ALMClient:
    """Thin client over the ALM primeapi"""

    def __init__(
        self,
        api_base: Optional[str] = None,
        access_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_base = (api_base or os.getenv("ALM_API_BASE", DEFAULT_API_BASE)).rstrip("/")
        self.access_token = access_token if access_token is not None else os.getenv("ALM_ACCESS_TOKEN", "")
        self.client = client or _create_client()

    @property
    def app_base(self) -> str:
        """Site root without the API path, used for player URLs."""
        return self.api_base.replace("/primeapi/v2", "")

    def close(self):
        self.client.close()

    def _bearer_headers(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": JSON_API}

    def _oauth_headers(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"oauth {token}", "Accept": JSON_API}

    def lo_url(self, lo_id: str) -> str:
        return f"{self.api_base}/learningObjects/{lo_id}"

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        GET a JSON:API document with the service bearer token.

        Raises:
            ValueError: token or URL missing
            ALMAPIError: non-2xx response or timeout
        """
        token = token if token is not None else self.access_token
        if not token or not isinstance(token, str):
            raise ValueError("Valid ALM access token is required")
        if not url or not isinstance(url, str):
            raise ValueError("Valid API URL is required")

        logger.info("Making API request: %s", url[:100])
        try:
            response = self.client.get(url, params=params, headers=self._bearer_headers(token))
        except httpx.TimeoutException as e:
            raise ALMAPIError("API request timeout") from e

        if not response.is_success:
            error_text = response.text[:200]
            logger.error(
                "API request failed: status=%s reason=%s error=%s",
                response.status_code, response.reason_phrase, error_text,
            )
            raise ALMAPIError(
                f"API call failed with status: {response.status_code} - {response.reason_phrase}",
                status=response.status_code,
                body=error_text,
            )

        data = response.json()
        logger.info(
            "API request successful: has_data=%s included=%d",
            bool(data.get("data")), len(data.get("included") or []),
        )
        return data

    def _fetch_with_fallback(self, course_id: str, params: Dict[str, str]) -> Optional[Dict[str, Any]]:
        candidates = _lo_candidates(course_id)
        for lo_id in candidates:
            try:
                data = self.get_json(self.lo_url(lo_id), params=params)
            except ALMAPIError as e:
                if e.status is None:
                    logger.error("Error fetching %s: %s", lo_id, e)
                    return None
                logger.info("%s not found (%s), trying next type", lo_id, e.status)
                continue
            logger.info("Learning object fetched as %s", lo_id.split(":", 1)[0])
            return data
        logger.error("Failed to fetch learning object %s", course_id)
        return None

    def fetch_learning_object(self, course_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a course, falling back to a learning program with the same id."""
        params = {
            "include": COURSE_INCLUDES,
            "useCache": "true",
            "filter.ignoreEnhancedLP": "false",
        }
        try:
            return self._fetch_with_fallback(course_id, params)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error fetching course data: %s", e)
            return None

    def fetch_instances(self, course_id: str) -> List[CourseInstance]:
        """List every instance of a course, ids converted to EDS form."""
        try:
            data = self._fetch_with_fallback(course_id, {"include": "instances"})
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error fetching course instances: %s", e)
            return []
        if not data:
            return []

        included = data.get("included") or []
        refs = (((data.get("data") or {}).get("relationships") or {}).get("instances") or {}).get("data") or []

        instances = []
        for ref in refs:
            alm_id = ref.get("id", "")
            eds_id = to_eds_instance_id(alm_id)
            detail = next(
                (i for i in included if i.get("id") == alm_id and i.get("type") == "learningObjectInstance"),
                None,
            )
            if detail:
                attributes = detail.get("attributes") or {}
                metadata = attributes.get("localizedMetadata") or [{}]
                instances.append(CourseInstance(
                    id=eds_id,
                    alm_id=alm_id,
                    name=metadata[0].get("name") or "Default Instance",
                    state=attributes.get("state") or "Active",
                ))
            else:
                instances.append(CourseInstance(
                    id=eds_id, alm_id=alm_id, name=f"Instance {eds_id}", state="Unknown",
                ))

        logger.info("Found %d instances for course %s", len(instances), course_id)
        for instance in instances:
            logger.debug("Instance: %s (ALM: %s) - %s (%s)", instance.id, instance.alm_id, instance.name, instance.state)
        return instances

    # Learner calls, made with the learner's OAuth token

    def _learner_params(self, token: str) -> Dict[str, str]:
        return {
            "include": ENROLLMENT_INCLUDES,
            "showLoContentSource": "true",
            "access_token": token,
        }

    def check_enrollment(self, lo_id: str, token: str) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """Return (is_enrolled, document) for the learner owning `token`."""
        try:
            response = self.client.get(
                self.lo_url(lo_id), params=self._learner_params(token), headers=self._oauth_headers(token),
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error checking enrollment status: %s", e)
            return False, None

        enrollment = (((data.get("data") or {}).get("relationships") or {}).get("enrollment") or {}).get("data")
        return bool(enrollment), data

    def enroll(self, lo_id: str, token: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.post(
                self.lo_url(lo_id), params=self._learner_params(token), headers=self._oauth_headers(token),
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error enrolling user: %s", e)
            return None

    def player_url(self, lo_id: str, token: str) -> str:
        return f"{self.app_base}/app/player?{urlencode({'lo_id': lo_id, 'access_token': token})}"


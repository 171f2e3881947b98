"""
EDS cache publisher: asks the Helix admin API to re-preview overlay pages
after a course changes. Best-effort, one attempt per page, failures logged.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import httpx

from alm_client import ALMClient


logger = logging.getLogger(__name__)

ADMIN_BASE_URL = "https://admin.hlx.page/preview"
USER_AGENT = "ALM-Course-Viewer/1.0"


@dataclass
class PublishResult:
    instance_id: Optional[str]
    success: bool
    status: Optional[int] = None
    error: Optional[str] = None


def _create_client() -> httpx.Client:
    return httpx.Client(
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(20.0, connect=10.0),
        follow_redirects=True,
    )


def overlay_path(course_id: str, instance_id: Optional[str] = None) -> str:
    path = f"/overview/trainingId/{course_id}"
    if instance_id:
        path += f"/trainingInstanceId/{instance_id}"
    return path


class EDSPublisher:
    """Refreshes EDS preview cache entries for course overlay pages"""

    def __init__(
        self,
        alm_client: ALMClient,
        auth_token: Optional[str] = None,
        site_path: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.alm_client = alm_client
        self.auth_token = auth_token if auth_token is not None else os.getenv("EDS_AUTH_TOKEN", "")
        # owner/repo/ref of the EDS site, e.g. "adobe/my-site/main"
        self.site_path = (site_path if site_path is not None else os.getenv("EDS_SITE_PATH", "")).strip("/")
        self.client = client or _create_client()

    def is_configured(self) -> bool:
        return bool(self.auth_token and self.site_path)

    def preview_url(self, course_id: str, instance_id: Optional[str] = None) -> str:
        return f"{ADMIN_BASE_URL}/{self.site_path}{overlay_path(course_id, instance_id)}"

    def _post(self, course_id: str, instance_id: Optional[str]) -> PublishResult:
        url = self.preview_url(course_id, instance_id)
        label = f"instance {instance_id}" if instance_id else "course level"
        logger.info("Publishing to EDS cache for %s: %s", label, url)
        try:
            response = self.client.post(
                url,
                headers={"Authorization": f"token {self.auth_token}"},
                json={"refresh": True},
            )
        except httpx.HTTPError as e:
            logger.error("Error publishing to EDS cache for %s: %s", label, e)
            return PublishResult(instance_id=instance_id, success=False, error=str(e))

        if response.is_success:
            logger.info("Successfully published to EDS cache for %s: %s", label, response.status_code)
            logger.debug("EDS response: %s", response.text)
            return PublishResult(instance_id=instance_id, success=True, status=response.status_code)

        logger.warning("EDS cache publishing failed for %s: %s - %s", label, response.status_code, response.text)
        return PublishResult(
            instance_id=instance_id, success=False, status=response.status_code, error=response.text,
        )

    def publish(self, course_id: str, instance_id: Optional[str] = None) -> List[PublishResult]:
        """
        Refresh the preview of one instance page, or of every instance page
        when no instance is given. Falls back to the course-level page when
        the course has no instances. Never raises.
        """
        logger.info("Publishing to EDS cache for course_id: %s, instance_id: %s", course_id, instance_id)
        if not self.is_configured():
            logger.warning("EDS_AUTH_TOKEN or EDS_SITE_PATH not provided, skipping EDS cache publishing")
            return []

        try:
            if instance_id:
                return [self._post(course_id, instance_id)]

            instances = self.alm_client.fetch_instances(course_id)
            if not instances:
                logger.warning("No instances found for course %s - publishing to course-level cache", course_id)
                return [self._post(course_id, None)]

            results = [self._post(course_id, instance.id) for instance in instances]
            success_count = sum(1 for r in results if r.success)
            logger.info(
                "EDS cache publishing completed: %d/%d instances updated successfully",
                success_count, len(instances),
            )
            return results
        except Exception:
            logger.exception("Error publishing to EDS cache")
            return []

"""
Course-info block
Reads the course meta tags back out of a rendered overlay page and builds the
course-info widget the EDS block decorates pages with.
"""
from typing import Dict

from bs4 import BeautifulSoup

from html_render import escape_html


META_FIELDS = {
    "course_id": "course-id",
    "course_title": "course-title",
    "course_duration": "course-duration",
    "course_skill_level": "course-skill-level",
    "course_skills": "course-skills",
    "course_description": "description",
}


def read_course_meta(html: str) -> Dict[str, str]:
    """Pull course meta tag values from a page; absent tags read as ''."""
    soup = BeautifulSoup(html, "html.parser")
    meta = {}
    for key, name in META_FIELDS.items():
        tag = soup.find("meta", attrs={"name": name})
        meta[key] = (tag.get("content") or "") if tag else ""
    return meta


def _missing_meta_block() -> str:
    expected = "".join(
        f"\n        <li><code>&lt;meta name=\"{name}\" content=\"...\"&gt;</code></li>"
        for name in META_FIELDS.values()
    )
    return f"""
<div class="course-info-error">
  <h3>⚠️ No Course Data Available</h3>
  <p>This block requires course meta tags to be present in the page head.</p>
  <p>Meta tags are typically injected by the course overlay service.</p>
  <details>
    <summary>Expected Meta Tags</summary>
    <ul>{expected}
    </ul>
  </details>
</div>"""


def render_course_info(meta: Dict[str, str]) -> str:
    if not meta.get("course_id"):
        return _missing_meta_block()

    course_id = escape_html(meta["course_id"])
    return f"""
<div class="course-info course-info-loaded">
  <div class="course-header">
    <h2 class="course-title">{escape_html(meta.get('course_title') or 'Course Title Not Available')}</h2>
    <div class="course-id">Course ID: {course_id}</div>
  </div>

  <div class="course-meta">
    <div class="course-meta-item">
      <span class="meta-label">Duration</span>
      <span class="meta-value">{escape_html(meta.get('course_duration') or 'N/A')}</span>
    </div>
    <div class="course-meta-item">
      <span class="meta-label">Skill Level</span>
      <span class="meta-value">{escape_html(meta.get('course_skill_level') or 'N/A')}</span>
    </div>
    <div class="course-meta-item">
      <span class="meta-label">Skills</span>
      <span class="meta-value">{escape_html(meta.get('course_skills') or 'N/A')}</span>
    </div>
  </div>

  <div class="course-description">
    <h3>Description</h3>
    <p>{escape_html(meta.get('course_description') or 'No description available')}</p>
  </div>

  <div class="course-actions">
    <button class="course-action-btn primary" data-action="enroll" data-course-id="{course_id}">Enroll Now</button>
    <button class="course-action-btn secondary" data-action="details" data-course-id="{course_id}">View Details</button>
  </div>
</div>"""


def decorate_page(html: str) -> str:
    return render_course_info(read_course_meta(html))

"""
HTML assembler for course overlay pages
Renders a CourseRecord into the page EDS ingests: meta tags for indexing in
the head, and the course-overview block structure in the body.
"""
import logging
import re
from typing import Any

from course_data import CourseRecord


logger = logging.getLogger(__name__)

FALLBACK_IMAGE_URL = "https://images.unsplash.com/photo-1516321318423-f06f85e504b3?w=1200&q=80"

_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}
_ESCAPE_RE = re.compile(r"[&<>\"']")


def escape_html(value: Any) -> str:
    """Escape text for element content and double-quoted attributes."""
    if value is None:
        return ""
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(0)], str(value))


def _prerequisites_html(record: CourseRecord) -> str:
    if not record.prerequisites:
        return ""
    items = "".join(f"""
          <div class="prerequisite-item">
            <span class="prerequisite-type">Course: {escape_html(p.type)}</span>
            <a href="#" class="prerequisite-link" data-prerequisite-id="{escape_html(p.id)}">{escape_html(p.name)}</a>
          </div>""" for p in record.prerequisites)
    return f"""
    <div class="course-section prerequisites-section">
      <h2 class="section-title">Course Prerequisites <span class="optional-label">(Optional)</span></h2>
      <div class="prerequisites-content">{items}
      </div>
    </div>"""


def _modules_html(record: CourseRecord) -> str:
    items = "".join(f"""
              <div class="module-item {m.status}" data-resource-id="{escape_html(m.id)}" data-course-id="{escape_html(record.course_id)}">
                <div class="module-icon">⭐</div>
                <div class="module-content">
                  <div class="module-header">
                    <span class="module-type">{escape_html(m.type)}: {escape_html(m.content_type)}</span>
                  </div>
                  <div class="module-title">
                    <a href="#" class="module-link">{escape_html(m.name)}</a>
                  </div>
                  <div class="module-meta">
                    <span class="module-duration">⏱️ {escape_html(m.duration)}</span>
                    <span class="module-status">{m.status_icon} {escape_html(m.status_text)}</span>
                  </div>
                </div>
              </div>""" for m in record.core_modules)
    return f"""
    <div class="course-section modules-section">
      <div class="section-tabs">
        <button class="tab-button active">Modules</button>
        <button class="tab-button">Notes</button>
      </div>
      <div class="modules-content">
        <div class="core-content-section">
          <h3 class="content-title">
            Core content
            <span class="duration-badge">⏱️ {escape_html(record.duration)} (estimated)</span>
          </h3>
          <div class="modules-list">{items}
          </div>
        </div>
      </div>
    </div>"""


def _job_aids_html(record: CourseRecord) -> str:
    if not record.job_aids:
        return ""
    items = "".join(f"""
          <div class="job-aid-item">
            <a href="#" class="job-aid-link">{escape_html(j.name)}</a>
            <p class="job-aid-description">{escape_html(j.description)}</p>
          </div>""" for j in record.job_aids)
    return f"""
    <div class="sidebar-section job-aids-section">
      <h3 class="sidebar-title">🔧 Job aids</h3>
      <div class="job-aids-list">{items}
      </div>
    </div>"""


def generate_course_html(record: CourseRecord) -> str:
    """Build the full overlay page for one course."""
    logger.info("Generating course HTML for %s", record.course_id)

    image_url = record.image_url or FALLBACK_IMAGE_URL
    title = escape_html(record.title)
    description = escape_html(record.description)

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{title} - Course Viewer</title>
  <meta name="description" content="{description}">
  <meta name="author" content="ALM Course Viewer">
  <meta name="timestamp" content="{escape_html(record.timestamp)}">

  <!-- Course Meta Tags for EDS Indexing -->
  <meta name="course-id" content="{escape_html(record.course_id)}">
  <meta name="course-title" content="{title}">
  <meta name="course-duration" content="{escape_html(record.duration)}">
  <meta name="course-skill-level" content="{escape_html(record.level)}">
  <meta name="course-skills" content="{escape_html(record.skills)}">
  <meta name="course-type" content="{escape_html(record.course_type)}">
  <meta name="course-rating" content="{escape_html(record.rating_avg)}">
  <meta name="course-enrollment-count" content="{escape_html(record.enrollment_count)}">

  <!-- Open Graph Meta Tags -->
  <meta property="og:type" content="website">
  <meta property="og:title" content="{title} - Course Viewer">
  <meta property="og:description" content="{description}">
  <meta property="og:image" content="{escape_html(image_url)}">
</head>

<body>
  <header></header>
  <main>
    <div>
      <div class="course-overview">
        <div class="course-header">
          <div class="course-hero">
            <h1 class="course-title">{title}</h1>
            <div class="course-format">{escape_html(record.lo_format)}</div>
          </div>
        </div>

        <div class="course-main-content">
          <div class="course-left-content">{_prerequisites_html(record)}{_modules_html(record)}
          </div>

          <div class="course-sidebar">
            <div class="sidebar-actions">
              <button class="continue-btn" data-course-id="{escape_html(record.course_id)}">Continue</button>
            </div>

            <div class="sidebar-section progress-section">
              <div class="progress-item">
                <span class="progress-count">{record.completed_count}/{len(record.core_modules)}</span>
                <span class="progress-label">Core content completed</span>
              </div>
            </div>
{_job_aids_html(record)}
          </div>
        </div>
      </div>
    </div>
  </main>
  <footer></footer>
</body>

</html>"""

"""Canvas query utilities: assignment URL parsing and course lookup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import aiohttp
from pydantic import TypeAdapter, ValidationError
from yarl import URL

from canvas_uploader.errors import CourseNotFoundError, ProtocolError, TransportError
from canvas_uploader.schemas import Course
from canvas_uploader.types import UploadContext

logger = logging.getLogger(__name__)

COURSES_PER_PAGE = 100

_course_list = TypeAdapter(list[Course])


@dataclass(frozen=True)
class AssignmentLocator:
    """Canvas instance, course and assignment identified by a web URL."""

    base_url: str
    course_id: int
    assignment_id: int


def parse_assignment_url(url: str) -> AssignmentLocator:
    """Extract the instance root and ids from an assignment web URL.

    Path segments alternate resource type and identifier, e.g.
    ``https://canvas.example.edu/courses/10/assignments/25/submissions``.

    Args:
        url: Assignment page URL.

    Returns:
        The parsed locator.

    Raises:
        ValueError: If the URL is not absolute or lacks numeric course/assignment ids.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not an absolute http(s) URL: {url}")

    segments = [segment for segment in parsed.path.split("/") if segment]
    resources: dict[str, str] = {}
    for kind, identifier in zip(segments[::2], segments[1::2]):
        resources.setdefault(kind, identifier)

    ids: dict[str, int] = {}
    for kind in ("courses", "assignments"):
        identifier = resources.get(kind)
        if identifier is None or not identifier.isdigit():
            raise ValueError(f"URL {url} does not contain a numeric /{kind}/<id> segment")
        ids[kind] = int(identifier)

    return AssignmentLocator(
        base_url=f"{parsed.scheme}://{parsed.netloc}",
        course_id=ids["courses"],
        assignment_id=ids["assignments"],
    )


async def list_courses(session: aiohttp.ClientSession, ctx: UploadContext) -> list[Course]:
    """List every course visible to the token, following pagination links.

    Args:
        session: Shared HTTP session.
        ctx: Upload context (base URL and token are used).

    Returns:
        All courses across pages.

    Raises:
        TransportError: If a page request fails.
        ProtocolError: If a page is not a list of courses.
    """
    url: URL | None = URL(f"{ctx.base_url}/api/v1/courses").with_query(per_page=COURSES_PER_PAGE)
    courses: list[Course] = []
    while url is not None:
        try:
            async with session.get(url, headers=ctx.auth_headers) as response:
                if not 200 <= response.status < 300:
                    raise TransportError(f"HTTP {response.status} listing courses", status=response.status, stage="courses")
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise ProtocolError("Course list is not valid JSON", stage="courses") from e
                next_link = response.links.get("next")
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransportError(f"GET {url} failed: {e!r}", stage="courses") from e

        try:
            courses.extend(_course_list.validate_python(payload))
        except ValidationError as e:
            raise ProtocolError("Unexpected course list response", stage="courses") from e
        url = URL(str(next_link["url"])) if next_link else None

    logger.debug("Found %d course(s)", len(courses))
    return courses


def _find_by_id[T](items: list[T], item_id: int, item_type: str) -> T:
    """Generic helper to find an item by its id attribute.

    Raises:
        CourseNotFoundError: If no item has the id.
    """
    for item in items:
        if getattr(item, "id") == item_id:
            return item
    raise CourseNotFoundError(f"{item_type} with ID {item_id} not found.", stage="courses")


async def get_course(session: aiohttp.ClientSession, ctx: UploadContext) -> Course:
    """Find the context's course among the courses visible to the token.

    Args:
        session: Shared HTTP session.
        ctx: Upload context.

    Returns:
        The matching course.

    Raises:
        CourseNotFoundError: If the course is not in the list.
    """
    courses = await list_courses(session, ctx)
    return _find_by_id(courses, ctx.course_id, "Course")

"""Backend-side API contract constants.

Keep externally visible prefixes centralized for drift control.
"""

API_PREFIXES = {
    "messages": "/api/courses/{course_id}/messages",
    "uploads": "/api/courses/{course_id}/uploads",
    "socket": "/ws/courses",
}

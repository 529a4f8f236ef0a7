# -*- coding: utf-8 -*-
"""
Domain errors raised by the services.

Each error carries the HTTP status code the API answers with, so the routers
never build ``HTTPException`` themselves; ``main.py`` installs a single handler.
"""

from fastapi import status


class LessonbookError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LessonbookError):
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(LessonbookError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidInput(LessonbookError):
    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(LessonbookError):
    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(Conflict):
    """The lesson is not in a status the requested action can start from."""

    def __init__(self, action: str, current_status: str):
        super().__init__(f"Cannot {action} a lesson that is '{current_status}'")
        self.action = action
        self.current_status = current_status


class ServerFault(LessonbookError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

# errors.py — Domain error taxonomy with TB-DOMAIN-NUMBER codes
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("taskboard.errors")

# ============================================================
# ERROR CODE CATALOGUE
# TB-{DOMAIN}-{NUMBER}
# Domains: REQ, AUTH, BOARD, ORD, SYS
# ============================================================

ERROR_CATALOGUE = {
    "TB-REQ-001": {"message": "Validation error", "http_status": 400},
    "TB-REQ-002": {"message": "Resource not found", "http_status": 404},
    "TB-REQ-003": {"message": "Conflict with existing state", "http_status": 409},
    "TB-AUTH-001": {"message": "Forbidden", "http_status": 403},
    "TB-AUTH-002": {"message": "Account is not active", "http_status": 403},
    "TB-BOARD-001": {"message": "Board not found", "http_status": 404},
    "TB-BOARD-002": {"message": "Column not found", "http_status": 404},
    "TB-BOARD-003": {"message": "Task not found", "http_status": 404},
    "TB-ORD-001": {"message": "Cannot move task across boards", "http_status": 400},
    "TB-SYS-001": {"message": "Internal server error", "http_status": 500},
}


class TaskBoardError(Exception):
    """Base class for errors surfaced to API callers with a stable kind and code"""

    kind = "internal"
    code = "TB-SYS-001"
    status_code = 500

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message or ERROR_CATALOGUE[self.code]["message"]
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "kind": self.kind, "code": self.code}


class ValidationError(TaskBoardError):
    kind = "validation"
    code = "TB-REQ-001"
    status_code = 400

    def __init__(
        self,
        message: Optional[str] = None,
        issues: Optional[List[Dict[str, Any]]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, code)
        self.issues = issues or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["issues"] = self.issues
        return data


class CrossScopeError(ValidationError):
    """A task move that targets a column on another board"""

    code = "TB-ORD-001"


class NotFoundError(TaskBoardError):
    kind = "not_found"
    code = "TB-REQ-002"
    status_code = 404


class ForbiddenError(TaskBoardError):
    kind = "forbidden"
    code = "TB-AUTH-001"
    status_code = 403


class ConflictError(TaskBoardError):
    kind = "conflict"
    code = "TB-REQ-003"
    status_code = 409


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TaskBoardError)
    async def taskboard_error_handler(request: Request, exc: TaskBoardError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        content = exc.to_dict()
        content["request_id"] = getattr(request.state, "request_id", None)
        return JSONResponse(status_code=exc.status_code, content=content)

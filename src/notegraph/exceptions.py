"""Custom exceptions for notegraph.

Provides a structured exception hierarchy with error codes and
machine-readable error information. The presentation layer decides how to
render them; ``http_status`` is only a hint.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Lookup errors (1xxx)
    NOTE_NOT_FOUND = 1001
    GROUP_NOT_FOUND = 1002
    TAG_NOT_FOUND = 1003
    LINK_NOT_FOUND = 1004
    ATTACHMENT_NOT_FOUND = 1005

    # Link errors (2xxx)
    LINK_ALREADY_EXISTS = 2001
    LINK_SELF_REFERENCE = 2002

    # Naming errors (3xxx)
    GROUP_NAME_TAKEN = 3001
    TAG_NAME_TAKEN = 3002

    # Hierarchy / state errors (4xxx)
    GROUP_CIRCULAR_REFERENCE = 4001
    GROUP_NOT_EMPTY = 4002
    GROUP_HIERARCHY_CORRUPTED = 4003

    # Storage errors (5xxx)
    STORAGE_READ_FAILED = 5001
    STORAGE_WRITE_FAILED = 5002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_LINK_TYPE = 7002
    INVALID_DEPTH = 7003
    INVALID_WEIGHT_RANGE = 7004
    GROUP_NAME_REQUIRED = 7005
    TAG_NAME_REQUIRED = 7006
    NOTE_TITLE_REQUIRED = 7007
    INVALID_LAYOUT = 7008


class NotegraphError(Exception):
    """Base exception for all notegraph errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    http_status = 400

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "status": self.http_status,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NotFoundError(NotegraphError):
    """Raised when a note, tag, group, link or attachment does not exist
    or is not owned by the requesting user."""

    http_status = 404

    _CODES = {
        "note": ErrorCode.NOTE_NOT_FOUND,
        "group": ErrorCode.GROUP_NOT_FOUND,
        "tag": ErrorCode.TAG_NOT_FOUND,
        "link": ErrorCode.LINK_NOT_FOUND,
        "attachment": ErrorCode.ATTACHMENT_NOT_FOUND,
    }

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{entity.capitalize()} with ID '{entity_id}' not found",
            code=self._CODES.get(entity, ErrorCode.VALIDATION_FAILED),
            details={"entity": entity, "id": str(entity_id)}
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateNameError(NotegraphError):
    """Raised when a group or tag name is already taken in its scope."""

    def __init__(
        self,
        entity: str,
        name: str,
        scope: Optional[str] = None,
        message: Optional[str] = None
    ):
        details = {"entity": entity, "name": name}
        if scope:
            details["scope"] = scope
        super().__init__(
            message or f"{entity.capitalize()} with name '{name}' already exists",
            code=ErrorCode.TAG_NAME_TAKEN if entity == "tag" else ErrorCode.GROUP_NAME_TAKEN,
            details=details
        )
        self.entity = entity
        self.name = name
        self.scope = scope


class LinkError(NotegraphError):
    """Raised for link-related errors."""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
        link_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if source_id:
            details["source_id"] = source_id
        if target_id:
            details["target_id"] = target_id
        if link_type:
            details["link_type"] = link_type

        super().__init__(message, code=code, details=details)
        self.source_id = source_id
        self.target_id = target_id
        self.link_type = link_type


class DuplicateLinkError(LinkError):
    """Raised when a (source, target, type) link already exists."""

    def __init__(self, source_id: str, target_id: str, link_type: str):
        super().__init__(
            f"Link already exists: {source_id} -> {target_id} ({link_type})",
            source_id=source_id,
            target_id=target_id,
            link_type=link_type,
            code=ErrorCode.LINK_ALREADY_EXISTS
        )


class SelfLinkError(LinkError):
    """Raised when a link would point from a note to itself."""

    def __init__(self, note_id: str, link_type: Optional[str] = None):
        super().__init__(
            "Cannot create self-referencing link",
            source_id=note_id,
            target_id=note_id,
            link_type=link_type,
            code=ErrorCode.LINK_SELF_REFERENCE
        )


class CircularReferenceError(NotegraphError):
    """Raised when moving a group under itself or one of its descendants."""

    def __init__(self, group_id: str, new_parent_id: str):
        super().__init__(
            f"Moving group '{group_id}' under '{new_parent_id}' would create a circular reference",
            code=ErrorCode.GROUP_CIRCULAR_REFERENCE,
            details={"group_id": group_id, "new_parent_id": new_parent_id}
        )
        self.group_id = group_id
        self.new_parent_id = new_parent_id


class InvalidStateError(NotegraphError):
    """Raised when an operation conflicts with the current state,
    e.g. deleting a group that still owns notes or subgroups."""

    http_status = 409

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.GROUP_NOT_EMPTY,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, details=details)


class ValidationError(NotegraphError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


def require_text(value: Optional[str], field: str, label: str, code: ErrorCode) -> str:
    """Return ``value`` stripped, or raise ValidationError when it is blank."""
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required", field=field, value=value, code=code)
    return value.strip()


class StorageError(NotegraphError):
    """Raised for storage/persistence errors."""

    http_status = 500

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class HierarchyCorruptionError(StorageError):
    """Raised when a stored group parent chain loops or exceeds the depth guard."""

    def __init__(self, group_id: str, depth: int):
        super().__init__(
            f"Parent chain of group '{group_id}' is corrupted (gave up after {depth} steps)",
            operation="walk_parent_chain",
            code=ErrorCode.GROUP_HIERARCHY_CORRUPTED
        )
        self.group_id = group_id
        self.depth = depth
        self.details["group_id"] = group_id
        self.details["depth"] = depth

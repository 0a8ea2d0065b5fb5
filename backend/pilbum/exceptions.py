"""
Pilbum Backend — Error Types
==============================

What:  The error classes services raise instead of returning status codes.
How:   A class declares its HTTP status, a machine-readable code and the
       Chinese message the album UI shows when the caller gives none.
       Keyword context rides along: clients see it as "details" on 4xx
       responses, while 5xx context stays in the server log.

    PilbumError                    500 server_error
    ├── ValidationError            400 validation_error
    ├── AuthenticationError        401 unauthorized
    ├── PermissionDeniedError      403 forbidden
    ├── NotFoundError              404 not_found
    ├── ConflictError              409 conflict
    ├── RateLimitExceededError     429 rate_limit_exceeded
    ├── FileStorageError           500 server_error
    ├── DatabaseError              500 server_error
    ├── DatabaseNotReadyError      503 database_not_ready
    └── StorageNotConfiguredError  503 storage_not_configured
"""

from typing import Any, Dict, Optional


class PilbumError(Exception):
    """Root of every error the API turns into a JSON error body."""

    status_code = 500
    error_code = "server_error"
    default_message = "服务器内部错误"

    def __init__(self, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.context = dict(context or {})
        super().__init__(self.message)

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class ValidationError(PilbumError):
    """
    Bad input the schemas could not catch: a missing upload, bytes Pillow
    cannot decode, a file over the size limit, a path escaping the storage
    root.

        {"error": "validation_error", "message": "没有提供图片文件",
         "details": {"field": "image"}}
    """

    status_code = 400
    error_code = "validation_error"
    default_message = "请求参数无效"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.field = field
        if field:
            self.context["field"] = field


class AuthenticationError(PilbumError):
    status_code = 401
    error_code = "unauthorized"
    default_message = "请先登录"


class PermissionDeniedError(PilbumError):
    status_code = 403
    error_code = "forbidden"
    default_message = "需要管理员权限"


class NotFoundError(PilbumError):
    """A photo, user or file lookup came back empty (or the id was malformed)."""

    status_code = 404
    error_code = "not_found"
    default_message = "资源不存在"

    def __init__(
        self,
        message: Optional[str] = None,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        for name, value in (("resource", resource), ("resource_id", resource_id)):
            if value:
                self.context[name] = value


class ConflictError(PilbumError):
    """Duplicate username."""

    status_code = 409
    error_code = "conflict"
    default_message = "资源已存在"


class FileStorageError(PilbumError):
    # Bucket names, paths and SDK messages belong in context, never in message.
    default_message = "文件存储失败"


class DatabaseError(PilbumError):
    default_message = "数据库操作失败，请稍后重试"


class DatabaseNotReadyError(PilbumError):
    """The tables do not exist until an admin runs POST /api/admin/db."""

    status_code = 503
    error_code = "database_not_ready"
    default_message = "数据库尚未初始化"


class StorageNotConfiguredError(PilbumError):
    status_code = 503
    error_code = "storage_not_configured"
    default_message = "对象存储尚未配置"


class RateLimitExceededError(PilbumError):
    """Per-IP budget used up; the handler echoes retry_after as a Retry-After header."""

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        super().__init__(f"请求过于频繁，请在 {retry_after} 秒后重试", context)
        self.retry_after = retry_after
        self.context["retry_after"] = retry_after

"""
Interceptor error taxonomy.
Each error carries the HTTP status it maps to at the request boundary.
"""

from typing import List, Optional


class InterceptorError(Exception):
    """Base class for every per-request failure"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoRuleMatch(InterceptorError):
    status_code = 404

    def __init__(self, message: str = "No matching interception rule found."):
        super().__init__(message)


class BadTargetUrl(InterceptorError):
    status_code = 400


class SandboxViolation(InterceptorError):
    status_code = 403


class LocalNotFound(InterceptorError):
    status_code = 404


class MissingTarget(InterceptorError):
    status_code = 500


class UpstreamError(InterceptorError):
    """Remote fetch failed; ``upstream_status`` is set when the server answered"""
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.reason = reason


class ProxyError(UpstreamError):
    pass


class ConfigValidationError(InterceptorError):
    status_code = 400

    def __init__(self, errors: List[str]):
        super().__init__("Invalid configuration data")
        self.errors = errors

# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain exception hierarchy.

All domain-level errors inherit from BridgeError.
This allows clean exception handling at adapter boundaries.
"""


class BridgeError(Exception):
    """Base exception for all domain errors."""


class AuthenticationError(BridgeError):
    """Bearer token missing or not matching the configured secret."""


class InvalidRequestError(BridgeError):
    """Inbound request body is malformed (missing or non-array messages, etc)."""


class QueueFullError(BridgeError):
    """Admission queue pending bound exceeded; the job was never created."""


class BackendError(BridgeError):
    """Backend call failed (timeout, non-2xx, transport failure)."""


class BackendTimeoutError(BackendError):
    """Backend call exceeded the configured duration and was aborted."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"backend call timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class BackendHTTPError(BackendError):
    """Backend responded with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the backend.
        body: Raw response text.
        detail: Parsed JSON body when available, else None.
    """

    def __init__(
        self,
        status_code: int,
        body: str = "",
        detail: object | None = None,
    ) -> None:
        message = f"backend_http_{status_code}"
        backend_message = _extract_error_message(detail)
        if backend_message:
            message += f": {backend_message}"
        elif body:
            message += f": {body}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.detail = detail


class BackendConnectionError(BackendError):
    """Backend could not be reached (connection refused, reset, DNS)."""


class FrameDecodeError(BridgeError):
    """A single backend SSE frame could not be decoded.

    Non-fatal: the decoder drops the frame and the stream continues.
    """


def _extract_error_message(detail: object | None) -> str:
    if not isinstance(detail, dict):
        return ""
    error = detail.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return ""

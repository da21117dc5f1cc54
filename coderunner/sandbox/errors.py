"""Error taxonomy for the execution engine.

Every failure that ends a session is an ``ExecutionError`` subclass. The
session turns it into an ``error`` event; the HTTP layer maps ``status_code``
onto its own error response.

Usage:
    from coderunner.sandbox.errors import InvalidSourceError

    raise InvalidSourceError(language="java")
"""

from typing import Any


class ExecutionError(Exception):
    """Base class for terminal session errors."""

    status_code: int = 500
    error: str = "execution_error"
    detail: str = "Execution failed"

    def __init__(self, detail: str | None = None, **context: Any) -> None:
        self.detail = detail or self.__class__.detail
        self.context = context if context else None
        super().__init__(self.detail)

    @property
    def message(self) -> str:
        """Text delivered to the submitter in the ``error`` event."""
        return f"System error: {self.detail}"


class UnsupportedLanguageError(ExecutionError):
    status_code = 400
    error = "unsupported_language"
    detail = "Unsupported language"

    @property
    def message(self) -> str:
        return self.detail


class InvalidSourceError(ExecutionError):
    status_code = 400
    error = "invalid_source"
    detail = "Source code is missing its entry point"

    @property
    def message(self) -> str:
        return self.detail


class CompilationError(ExecutionError):
    """The compiler reported diagnostics after noise filtering."""

    status_code = 422
    error = "compilation_error"
    detail = "Compilation failed"

    @property
    def message(self) -> str:
        return f"Compilation Error:\n{self.detail}"


class ProvisioningError(ExecutionError):
    status_code = 502
    error = "provisioning_error"
    detail = "Failed to provision an isolated container"


class UploadError(ExecutionError):
    status_code = 502
    error = "upload_error"
    detail = "Failed to upload source code"


class RuntimeStreamError(ExecutionError):
    status_code = 502
    error = "runtime_stream_error"
    detail = "Execution stream failed"


class ExecutionTimeoutError(ExecutionError):
    status_code = 504
    error = "timeout_exceeded"
    detail = "Execution timed out"

    def __init__(self, timeout_sec: float, phase: str = "run", **context: Any) -> None:
        self.timeout_sec = timeout_sec
        self.phase = phase
        super().__init__(
            f"{phase.capitalize()} exceeded {timeout_sec:g} seconds",
            timeout_sec=timeout_sec,
            phase=phase,
            **context,
        )

    @property
    def message(self) -> str:
        if self.phase == "compile":
            return f"\n[System] Compilation timeout ({self.timeout_sec:g} seconds exceeded)"
        return f"\n[System] Execution timeout ({self.timeout_sec:g} seconds exceeded)"


class ArchiveError(ExecutionError):
    error = "archive_error"
    detail = "Failed to build source archive"


class TeardownError(ExecutionError):
    """Stop/remove failed. Logged only, never delivered to the submitter."""

    error = "teardown_error"
    detail = "Failed to tear down container"

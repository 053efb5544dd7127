"""Request result with HTTP-style status and prefixed messages."""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .model_set import ModelSet

ERROR_PREFIX = "SQLREST ERROR"
WARNING_PREFIX = "SQLREST WARNING"
INFO_PREFIX = "SQLREST INFO"
DEBUG_PREFIX = "SQLREST DEBUG"

MESSAGE_HEADER = "X-SQLREST-MESSAGE-"


@dataclass
class ApiResult:
    """Outcome of one API request.

    Errors never escape the orchestrator as exceptions; they are recorded here
    as a status code and message. The previous status message is kept in
    ``messages`` whenever a new error replaces it so that no failure is lost.

    Attributes:
        success: Whether the request succeeded
        status_code: HTTP status code
        status_message: HTTP status message
        messages: Ordered error / warning / info / debug messages
        data: Result rows of a GET request
    """

    success: bool = True
    status_code: int = 200
    status_message: str = "OK"
    messages: list[str] = field(default_factory=list)
    data: ModelSet | None = None

    def set_ok(self) -> None:
        """Set OK status without touching the messages."""
        self.success = True
        self.status_code = 200
        self.status_message = "OK"

    def set_error(self, status_code: int, status_message: str, operation: str) -> ApiResult:
        """Set error status.

        Args:
            status_code: HTTP status code
            status_message: Error description
            operation: Name of the operation that failed

        Returns:
            Self for chaining
        """
        self.success = False
        self.status_code = status_code
        if self.status_message != "OK":
            self.messages.append(self.status_message)
        if status_message.startswith(ERROR_PREFIX):
            self.status_message = status_message
        else:
            self.status_message = f"{ERROR_PREFIX} ({operation}): {status_message}"
        return self

    def add_warning(self, message: str, operation: str) -> ApiResult:
        """Add a warning message."""
        return self._add_message(WARNING_PREFIX, message, operation)

    def add_info(self, message: str, operation: str) -> ApiResult:
        """Add an info message."""
        return self._add_message(INFO_PREFIX, message, operation)

    def add_debug(self, message: str, operation: str) -> ApiResult:
        """Add a debug message."""
        return self._add_message(DEBUG_PREFIX, message, operation)

    def _add_message(self, prefix: str, message: str, operation: str) -> ApiResult:
        message = message.strip()
        if message:
            self.messages.append(f"{prefix} ({operation}): {message}")
        return self

    def copy_messages_to_headers(
        self,
        headers: MutableMapping[str, str],
        errors: bool = True,
        warnings: bool = False,
        infos: bool = False,
        debug: bool = False,
    ) -> None:
        """Copy selected messages into numbered HTTP headers.

        Args:
            headers: Header mapping to write into
            errors: Copy error messages
            warnings: Copy warning messages
            infos: Copy info messages
            debug: Copy debug messages
        """
        wanted = [
            prefix
            for prefix, enabled in (
                (ERROR_PREFIX, errors),
                (WARNING_PREFIX, warnings),
                (INFO_PREFIX, infos),
                (DEBUG_PREFIX, debug),
            )
            if enabled
        ]
        index = 1
        for message in self.messages:
            if message.startswith(tuple(wanted)):
                headers[f"{MESSAGE_HEADER}{index}"] = message.replace("\r", " ").replace("\n", " ")
                index += 1

    def print_log(self) -> str:
        """Format the result for logging."""
        return (
            f"ApiResult: status_code={self.status_code}, "
            f"status_message={self.status_message}, messages=[{', '.join(self.messages)}]"
        )

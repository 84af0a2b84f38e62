from __future__ import annotations


class AutomationError(RuntimeError):
    """Base class for failures talking to the browser-automation service."""


class AutomationRequestError(AutomationError):
    def __init__(self, message: str, *, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AutomationTimeoutError(AutomationError):
    pass


class SearchFailedError(AutomationError):
    def __init__(self, message: str, reasons: list[str] | None = None):
        self.reasons = list(reasons or [])
        detail = f" Details: {' | '.join(self.reasons[:3])}" if self.reasons else ""
        super().__init__(f"{message}{detail}")

"""PagePilot exception hierarchy."""

from __future__ import annotations


class PagePilotError(Exception):
    """Base exception for all PagePilot-specific errors."""


class InvalidRequestError(PagePilotError):
    """Raised when a caller request is malformed (missing URL, bad action fields).

    Always raised before any browser resource is acquired.
    """


class NavigationError(PagePilotError):
    """Raised when navigation to a URL failed after all retry attempts.

    Attributes:
        url: The URL that could not be loaded.
        reason: Short description of the last failure.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}")


class CaptchaSolveError(PagePilotError):
    """Raised when the external solving service failed or timed out.

    Attributes:
        captcha_type: The challenge type that was being solved.
        reason: Provider error code or exception text.
    """

    def __init__(self, captcha_type: str, reason: str) -> None:
        self.captcha_type = captcha_type
        self.reason = reason
        super().__init__(f"Failed to solve {captcha_type}: {reason}")


class ActionError(PagePilotError):
    """Raised when a scripted action fails.

    The message always carries the action type so the error is useful in a
    result payload without the traceback.

    Attributes:
        action_type: The ``type`` of the failing action.
        selector: The action's selector, when it has one.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        action_type: str,
        cause: BaseException | str | None = None,
        *,
        selector: str | None = None,
    ) -> None:
        self.action_type = action_type
        self.selector = selector
        self.cause = cause
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(f"Action failed: {action_type} - {detail}")


class UnknownActionError(ActionError):
    """Raised for an action whose ``type`` is not one of the supported kinds."""

    def __init__(self, action_type: str) -> None:
        super().__init__(action_type, f"Unknown action type: {action_type}")


class StorageError(PagePilotError):
    """Raised when profile persistence I/O fails.

    Attributes:
        host_key: Hostname of the profile being read or written.
        reason: Description of the failure.
    """

    def __init__(self, host_key: str, reason: str) -> None:
        self.host_key = host_key
        self.reason = reason
        super().__init__(f"Profile storage failed for {host_key}: {reason}")


class ProfileNotFoundError(StorageError):
    """Raised internally when no stored profile exists for a hostname."""

    def __init__(self, host_key: str) -> None:
        super().__init__(host_key, "profile not found")


class CacheCorruptionError(PagePilotError):
    """Raised if a cache read observes an entry that is not a complete value."""


class ProxyError(PagePilotError):
    """Raised when the local proxy anonymizer cannot be started."""

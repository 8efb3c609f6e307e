from __future__ import annotations


class CopilotError(Exception):
    """Base class for copilot specific exceptions."""


class LLMError(CopilotError):
    """Raised when an LLM provider returns an error."""


class SurfaceError(CopilotError):
    """Raised when the page surface cannot be reached."""


class SurfaceNotReady(SurfaceError):
    """Raised when a script is sent before the page is attached and ready."""


class TurnCancelled(CopilotError):
    """Raised when the active conversation turn has been cancelled."""

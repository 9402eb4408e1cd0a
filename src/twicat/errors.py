"""Exceptions raised by twicat components.

Components raise these; only the CLI turns them into an exit status.
"""

from __future__ import annotations


class TwicatError(Exception):
    """Base class for every error twicat reports to the operator."""


class ListenerError(TwicatError):
    """The local callback listener could not bind or stopped serving."""


class TunnelError(TwicatError):
    pass


class TunnelStartError(TunnelError):
    """The ngrok subprocess could not be spawned."""


class TunnelLookupError(TunnelError):
    """The ngrok API was unreachable, undecodable, or had no matching tunnel."""


class ProviderError(TwicatError):
    pass


class ProviderTransportError(ProviderError):
    """Network failure or undecodable response while talking to Twilio."""


class ProviderRejectedError(ProviderError):
    """Twilio answered with a non-2xx status."""

    def __init__(self, message: str, status: int, code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class PromptError(TwicatError):
    """Interactive input was aborted."""


class NumberSelectionError(TwicatError):
    pass


class StepFailed(TwicatError):
    """A startup step failed; the message is what the operator sees."""

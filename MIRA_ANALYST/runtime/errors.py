"""Fatal error types raised by the Mira analysis runtime.

Anything deriving from :class:`FatalError` aborts the run: remaining rounds are
skipped, the sandbox is torn down, and the error propagates to the caller.
Tool-level problems never use these types; they are serialised back to the
model instead.
"""
from __future__ import annotations


class FatalError(RuntimeError):
    """Infrastructure failure that ends an analysis run."""


class MissingCredentials(FatalError):
    """A mandatory API key is not configured."""


class SandboxUnavailable(FatalError):
    """The code sandbox could not be created."""


class SandboxSetupTimeout(FatalError):
    """Sandbox creation exceeded the client-side setup timeout."""


class UploadFailed(FatalError):
    """The dataset could not be written into the sandbox."""


class ModelUnavailable(FatalError):
    """The generative model service failed to answer a round."""


class AnalysisTimeout(FatalError):
    """The whole run exceeded its wall-clock ceiling."""


class InvalidTransition(RuntimeError):
    """The conversation loop attempted a transition outside its table."""

"""
Exceptions raised out of a test run.

Everything that aborts Engine.run() derives from MsnrError so hosts can
catch a single type.
"""
from __future__ import annotations


class MsnrError(Exception):
    """Base class for fatal run errors."""


class TransportError(MsnrError):
    """The radio link could not be opened, or was lost mid-run."""


class AmplifierToggleError(MsnrError):
    """Fetching or verifying the remote LNA setting ran out of attempts."""


class RunCancelled(MsnrError):
    """The host asked the engine to stop."""

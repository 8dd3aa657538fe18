"""
Exceptions raised by the assembly pipeline.
"""


class AssemblyError(Exception):
    """Base class for all assembly failures."""


class InvalidInput(AssemblyError):
    """Malformed or missing subtitle, video or duration data."""


class EnvironmentUnavailable(AssemblyError):
    """A required external program could not be located or started."""


class SegmentEncodeFailed(AssemblyError):
    """A single segment could not be encoded. Recovered per segment."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class AssemblyFailed(AssemblyError):
    """Concatenation failed or produced no output."""


class RerenderFailed(AssemblyError):
    """Constant frame rate re-render failed. Non-fatal."""


class AssemblyCancelled(AssemblyError):
    """The run was aborted before completion."""

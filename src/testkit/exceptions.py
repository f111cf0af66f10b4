"""Exceptions raised by the testkit engine."""


class HarnessError(Exception):
    """Base class for harness usage and configuration errors."""

    pass


class CaptureError(HarnessError):
    """Raised when a command capture cannot be set up."""

    pass


class DiscoveryError(HarnessError):
    """Raised when an explicitly requested suite cannot be run."""

    pass


class FailNow(BaseException):
    """Ends the current test body after an error has been recorded.

    Derives from BaseException so that ``except Exception`` inside a test
    body does not swallow it.
    """

    pass


class SkipNow(BaseException):
    """Ends the current test body and marks the test skipped."""

    pass

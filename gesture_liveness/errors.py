"""
Gesture Liveness — Error Taxonomy
=================================
Session-level errors are raised loudly: they mean the integration is wrong,
not that the camera produced a noisy frame.

  - ConfigurationError: bad gesture list or thresholds (raised at start)
  - InvalidStateError:  lifecycle call in the wrong session state

Insufficient landmark data is never an exception. Detectors degrade to a
safe "not detected" outcome instead.
"""


class LivenessError(Exception):
    """Base class for all gesture liveness errors."""


class ConfigurationError(LivenessError, ValueError):
    """Rejected session configuration."""


class InvalidStateError(LivenessError, RuntimeError):
    """Operation not allowed in the current session state."""

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"{operation}() is not allowed while session is {state}")

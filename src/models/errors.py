"""
Exception hierarchy for the drum-head detector.

Setup failures and precondition violations propagate to the caller; capture
failures are absorbed by the scheduler and never raised.
"""


class DrumheadError(Exception):
    """Base class for all application errors."""


class SetupError(DrumheadError):
    """Startup could not complete; the system never becomes ready."""


class ModelLoadError(SetupError):
    """A model asset could not be fetched or turned into a session."""


class ShapeMismatchError(DrumheadError, ValueError):
    """The input tensor does not match the configured model input shape."""

    def __init__(self, expected, actual):
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(f"Input tensor shape {self.actual} does not match model input shape {self.expected}")


class PipelineBusyError(DrumheadError):
    """A frame is already in flight through the detection pipeline."""


class ImageDecodeError(DrumheadError):
    """Selected image bytes could not be decoded."""

"""Exception types raised by the map generation core."""


class MapGenerationError(Exception):
    """Base class for all map generation errors."""


class MeshConfigurationError(MapGenerationError, ValueError):
    """Raised when a mesh cannot be built from the given configuration."""

    def __init__(self, reason: str):
        super().__init__(f"invalid mesh configuration: {reason}")
        self.reason = reason


class FieldMismatchError(MapGenerationError, ValueError):
    """Raised when height fields bound to different meshes are combined."""

    def __init__(self, reason: str):
        super().__init__(f"field mismatch: {reason}")
        self.reason = reason


class SinkFillingNotConverged(MapGenerationError, RuntimeError):
    """
    Raised when sink filling hits its iteration ceiling.

    This is recoverable: ``partial`` holds the field as it stood after the
    last completed pass, which is still a valid (if partially filled)
    height field.
    """

    def __init__(self, partial, iterations: int):
        super().__init__(
            f"sink filling did not converge after {iterations} iterations"
        )
        self.partial = partial
        self.iterations = iterations

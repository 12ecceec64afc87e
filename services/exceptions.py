"""Error kinds raised by the analysis engine."""


class InsufficientDataError(ValueError):
    """Series is shorter than a computation requires. Callers must not use partial output."""

    def __init__(self, required: int, actual: int, what: str = "analysis"):
        self.required = required
        self.actual = actual
        super().__init__(
            f"Insufficient data for {what}: need at least {required} points, got {actual}"
        )

"""Exception types raised by the analysis pipeline."""


class MtbDifficultyError(Exception):
    """Base class for all analysis errors."""


class ParseError(MtbDifficultyError):
    """The input track could not be turned into a usable point sequence."""

    kind = "parse_error"


class MalformedTrackError(ParseError):
    """The input is not valid GPX / point-array data at all."""

    kind = "malformed"


class InsufficientPointsError(ParseError):
    """Fewer than two valid points remained after filtering."""

    kind = "insufficient_points"

    def __init__(self, count: int):
        self.count = count
        super().__init__(
            f"Track needs at least 2 valid points, got {count} after filtering"
        )


class InvalidInput(MtbDifficultyError):
    """A single point has unusable coordinates.

    Raised and caught inside the parser; a bad point is dropped, never fatal.
    """


class ExternalLookupError(MtbDifficultyError):
    """A terrain tag query for one sample failed (network, HTTP or payload)."""


class CoverageTooLow(MtbDifficultyError):
    """Too few terrain samples resolved to trust a terrain-based score."""

    def __init__(self, coverage: float, resolved: int, total: int):
        self.coverage = coverage
        self.resolved = resolved
        self.total = total
        super().__init__(
            f"Terrain coverage too low: {resolved}/{total} samples resolved "
            f"({coverage * 100:.0f}%)"
        )

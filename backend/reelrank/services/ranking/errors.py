"""Exceptions raised by the ranking engine."""


class RankingError(Exception):
    """Base class for ranking engine errors."""


class InvalidStarRating(RankingError, ValueError):
    """Star rating outside the integers 1-5. Raised before any write."""

    def __init__(self, value):
        super().__init__(f"Invalid star rating: {value!r}. Must be an integer from 1 to 5.")
        self.value = value


class InvalidPosition(RankingError, ValueError):
    """Requested rank position does not exist in the list."""


class RankingStateError(RankingError, ValueError):
    """A comparison state was advanced or committed out of turn, or is malformed."""


class TierOrderingViolation(RankingError):
    """A computed position would place an item above a higher tier.

    Recovered locally by clamping; logged, never propagated to callers.
    """


class PersistenceFailure(RankingError):
    """The store rejected a write. The operation was rolled back in full."""


class RepairWriteFailure(RankingError):
    """A single monotonicity-repair correction could not be written. Logged only."""

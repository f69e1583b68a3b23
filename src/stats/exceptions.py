"""Statistics engine exceptions."""


class StatsException(Exception):
    """Base exception for statistics and reward-accounting errors."""

    pass


class ObjectNotFound(StatsException):
    """Raised when a user or ride reference does not resolve."""

    pass


class InvalidInput(StatsException):
    """Raised when ride metrics are outside their domain (e.g. negative)."""

    pass


class AggregateInconsistent(StatsException):
    """Raised when a stored aggregate diverges from one rebuilt from rides.

    Attributes
    ----------
    user_id : int
        Owner of the aggregate
    fields : dict[str, tuple]
        Diverging field name -> (stored value, recomputed value)
    """

    def __init__(self, user_id: int, fields: dict[str, tuple]):
        self.user_id = user_id
        self.fields = fields
        super().__init__(
            f"Aggregate for user {user_id} diverges from ride history: "
            f"{', '.join(sorted(fields))}"
        )

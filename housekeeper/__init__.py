"""GitLab artifact housekeeping: storage summaries and expired-artifact cleanup."""

__version__ = "0.1.0"


class HousekeepingError(Exception):
    """Base class for housekeeper failures."""

"""
Error kinds raised by the football pool core.

Each error carries the HTTP status the API layer answers with, so handlers
can map any PoolError to a JSON response without a lookup table.
"""


class PoolError(Exception):
    """Base class for all football pool errors"""

    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {"error": self.message}


class TransportError(PoolError):
    """Request to the scoreboard provider failed"""

    status_code = 502


class RemoteStatusError(PoolError):
    """Scoreboard provider answered with a non-200 status"""

    status_code = 502

    def __init__(self, code, message=None):
        super().__init__(message or f"Remote API returned status {code}")
        self.code = code


class EmptyPayload(PoolError):
    """Scoreboard provider returned an empty response"""

    status_code = 502


class InvalidEvent(PoolError):
    """Event is missing competitors or team names"""

    status_code = 422


class MissingStartTime(InvalidEvent):
    """Unable to determine the start date from competition or event"""


class NotFound(PoolError):
    """Resource not found"""

    status_code = 404


class Conflict(PoolError):
    """Operation conflicts with existing data"""

    status_code = 409

    def __init__(self, reason=None):
        super().__init__(reason)
        self.reason = self.message


class InvalidPickSet(PoolError):
    """Picks for a week must use each rank from 1 to N exactly once"""

    status_code = 400


class StoreError(PoolError):
    """Database error"""

    status_code = 500


class ConfigError(PoolError):
    """Configuration could not be loaded"""


class InvalidGame(PoolError):
    """Game fields are missing or inconsistent"""

    status_code = 400


class InvalidWeek(PoolError):
    """Week fields are missing or inconsistent"""

    status_code = 400

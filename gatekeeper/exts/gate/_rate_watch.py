from collections import deque
from datetime import datetime, timedelta

from gatekeeper.log import get_logger
from gatekeeper.utils.lock import KeyedLock

log = get_logger(__name__)


class RateTracker:
    """
    Track each user's recent message timestamps and report when they post too quickly.

    The rule is blunt: `threshold` messages inside one `window` trips it.
    There is no decay or leaky-bucket smoothing, and a user's window is only pruned when that
    user sends another message.
    """

    def __init__(self, window: timedelta = timedelta(seconds=60), threshold: int = 2):
        """
        Initialise the tracker.

        :param window: Length of the trailing window messages are counted in.
        :param threshold: Number of messages within the window that trips the tracker.
        """
        self.window = window
        self.threshold = threshold
        self.user_message_timestamps: dict[int, deque[datetime]] = {}
        self._locks = KeyedLock("rate_watch")

    async def record(self, user_id: int, timestamp: datetime) -> bool:
        """
        Record a message and return True if the user has now tripped the threshold.

        Entries older than `window` relative to `timestamp` are discarded first. A trip empties the
        user's window before the lock is released, so messages that arrive while the caller is still
        acting on the trip start counting from zero.
        """
        async with self._locks(user_id):
            timestamps = self.user_message_timestamps.setdefault(user_id, deque())
            timestamps.append(timestamp)

            while timestamps and timestamps[0] < timestamp - self.window:
                timestamps.popleft()

            if len(timestamps) < self.threshold:
                return False

            log.trace(f"{user_id} sent {len(timestamps)} messages within {self.window}.")
            del self.user_message_timestamps[user_id]
            return True

    async def clear(self, user_id: int) -> None:
        """Forget the user's recorded messages."""
        async with self._locks(user_id):
            self.user_message_timestamps.pop(user_id, None)

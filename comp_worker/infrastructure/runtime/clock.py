"""Clock implementation."""

import time
from datetime import datetime, timezone

from comp_worker.domain.ports import ClockPort
from comp_worker.domain.types import Timestamp


class SystemClock(ClockPort):
    """System clock implementation."""

    def now(self) -> Timestamp:
        """Get current timestamp."""
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        """Get monotonic seconds."""
        return time.monotonic()

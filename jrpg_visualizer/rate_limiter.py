"""Global image-generation throttle.

The last generation time lives in a small JSON file outside the session
database, so every hook process on the machine shares one limit no matter
which session it serves. Check-and-set is not locked: two processes racing
past the check can both generate, which only means a small burst.

File format: {"lastGeneration": <epoch ms>}
"""

from __future__ import annotations

import json
import logging
import tempfile
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

RATE_LIMIT_FILE = Path(tempfile.gettempdir()) / "jrpg-visualizer-rate-limit.json"
MIN_INTERVAL_MS = 5000


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """File-backed minimum interval between image generations.

    Args:
        state_file:      Where the last generation timestamp is kept.
        min_interval_ms: Minimum spacing between allowed generations.
        clock:           Returns the current time in epoch ms. Tests inject a fake.
    """

    def __init__(
        self,
        state_file: Path = RATE_LIMIT_FILE,
        min_interval_ms: int = MIN_INTERVAL_MS,
        clock: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self._file = Path(state_file)
        self._interval = min_interval_ms
        self._clock = clock

    def _last_generation(self) -> int | None:
        if not self._file.is_file():
            return None
        return int(json.loads(self._file.read_text())["lastGeneration"])

    def should_generate_image(self) -> bool:
        """True if the interval has passed, recording now as the last generation.

        A refusal leaves the stored timestamp untouched. Any failure reading or
        writing the file allows generation.
        """
        now = self._clock()
        try:
            last = self._last_generation()
            if last is not None and now - last < self._interval:
                logger.debug("Rate limited: %dms remaining", self._interval - (now - last))
                return False
            self._file.write_text(json.dumps({"lastGeneration": now}))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("Rate limit check failed, allowing generation: %s", e)
        return True

    def time_until_next_generation(self) -> int:
        """Milliseconds until generation is allowed again, 0 if it already is."""
        try:
            last = self._last_generation()
        except (OSError, ValueError, KeyError, TypeError):
            return 0
        if last is None:
            return 0
        return max(0, self._interval - (self._clock() - last))

    def reset(self) -> None:
        """Forget the last generation so the next check is allowed."""
        try:
            if self._file.is_file():
                self._file.write_text(json.dumps({"lastGeneration": 0}))
        except OSError as e:
            logger.debug("Rate limit reset failed: %s", e)

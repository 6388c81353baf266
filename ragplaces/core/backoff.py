"""Retry delays for rate-limited calls."""

import math
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BackoffPolicy:
    base_seconds: float = 15.0
    max_seconds: float = 120.0
    max_retries: int = 3
    hint_padding: float = 2.0

    def delay(self, attempt: int, hint: Optional[float] = None) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        if hint is not None and hint >= 0:
            return min(float(math.ceil(hint)) + self.hint_padding, self.max_seconds)
        return min(self.base_seconds * (2 ** attempt), self.max_seconds)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries


DEFAULT_POLICY = BackoffPolicy()

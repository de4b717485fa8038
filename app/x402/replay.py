# app/x402/replay.py
"""
Replay protection for payment authorizations.

Each (payer, nonce) pair may be spent once. Consumed pairs are remembered
in memory until the authorization's validBefore passes, after which the
time-window check rejects the authorization anyway.

The registry is per process. Deployments running several workers share
nothing, so a nonce replayed against a different worker is only caught by
the facilitator.
"""
import heapq
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

NonceKey = Tuple[str, str]


class NonceRegistry:
    """
    Bounded, time-windowed set of consumed nonces.

    Thread-safe for concurrent access from the request thread pool.
    """

    def __init__(
        self,
        max_entries: int = 100_000,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            max_entries: Upper bound on remembered nonces. When full, the
                entry closest to expiry is evicted.
            clock: Returns the current Unix time in seconds.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._clock = clock or time.time
        self._expiry: Dict[NonceKey, int] = {}
        self._heap: List[Tuple[int, NonceKey]] = []
        self._lock = threading.Lock()

    @staticmethod
    def make_key(payer: str, nonce: str) -> NonceKey:
        return (payer.lower(), nonce.lower())

    def consume(self, payer: str, nonce: str, valid_before: int) -> bool:
        """
        Mark a nonce as spent.

        Returns:
            True if the nonce was unused, False if it was already consumed
        """
        key = self.make_key(payer, nonce)
        now = self._clock()

        with self._lock:
            self._purge(now)

            if key in self._expiry:
                logger.warning(f"Replayed payment nonce from {payer}: {nonce}")
                return False

            while len(self._expiry) >= self._max_entries:
                self._evict_one()

            self._expiry[key] = valid_before
            heapq.heappush(self._heap, (valid_before, key))
            return True

    def __contains__(self, item: NonceKey) -> bool:
        payer, nonce = item
        with self._lock:
            self._purge(self._clock())
            return self.make_key(payer, nonce) in self._expiry

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiry)

    def clear(self) -> None:
        with self._lock:
            self._expiry.clear()
            self._heap.clear()

    def _purge(self, now: float) -> None:
        # validBefore is inclusive and compared in whole seconds, matching the
        # time-window check, so an entry lives through its entire last second
        now = int(now)
        while self._heap and self._heap[0][0] < now:
            expiry, key = heapq.heappop(self._heap)
            if self._expiry.get(key) == expiry:
                del self._expiry[key]

    def _evict_one(self) -> None:
        while self._heap:
            expiry, key = heapq.heappop(self._heap)
            if self._expiry.get(key) == expiry:
                del self._expiry[key]
                logger.warning("Nonce registry full, evicted entry closest to expiry")
                return

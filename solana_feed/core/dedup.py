"""
Signature dedup filter.

Remembers transaction signatures that were already handed to the classifier
so a signature reported twice by the log stream (reconnect overlap, several
pools mentioned in one tx) is classified once.
"""

from collections import OrderedDict


class SignatureDedup:
    """
    Bounded least-recently-seen signature set.

    Signatures are never revisited once their notification window has
    passed, so evicting the oldest entries at capacity keeps memory flat
    without re-admitting anything the stream can still repeat.

    Usage:
        dedup = SignatureDedup(capacity=100_000)
        if dedup.should_process(signature):
            worker.submit(signature)
    """

    def __init__(self, capacity: int = 100_000):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()
        self.evicted = 0

    def should_process(self, signature: str) -> bool:
        """
        Record a signature.

        Returns:
            True the first time a signature is seen, False afterwards.
        """
        if signature in self._seen:
            self._seen.move_to_end(signature)
            return False

        self._seen[signature] = None
        if len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
            self.evicted += 1
        return True

    def __contains__(self, signature: str) -> bool:
        return signature in self._seen

    def __len__(self) -> int:
        return len(self._seen)

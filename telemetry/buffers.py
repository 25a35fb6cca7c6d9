"""In-memory sample buffers: the live display window and the persistence queue."""

from telemetry.decoder import Sample

DEFAULT_WINDOW_CAPACITY = 500


class LiveWindow:
    """
    Fixed-capacity, insertion-ordered window of the most recent samples.
    Appends at the tail and evicts from the head once capacity is exceeded.
    """

    def __init__(self, capacity: int = DEFAULT_WINDOW_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._samples: list[Sample] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, sample: Sample) -> None:
        self._samples.append(sample)
        excess = len(self._samples) - self._capacity
        if excess > 0:
            del self._samples[:excess]

    def snapshot(self) -> list[Sample]:
        """Full ordered copy of the current window, oldest first."""
        return list(self._samples)

    def latest(self) -> Sample | None:
        return self._samples[-1] if self._samples else None

    def __len__(self) -> int:
        return len(self._samples)


class AccumulationQueue:
    """Unbounded queue of samples awaiting the next flush."""

    def __init__(self) -> None:
        self._samples: list[Sample] = []

    def enqueue(self, sample: Sample) -> None:
        self._samples.append(sample)

    def drain_snapshot(self) -> list[Sample]:
        """Take every queued sample and leave the queue empty.

        Runs without suspending, so no enqueue can land between the read
        and the clear.
        """
        drained, self._samples = self._samples, []
        return drained

    def __len__(self) -> int:
        return len(self._samples)

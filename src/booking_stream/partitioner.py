"""Round-robin partition assignment for aiokafka producers."""

import itertools
from typing import List, Optional


class RoundRobinPartitioner:
    """
    Spread messages evenly over partitions, ignoring the message key.

    Matches the aiokafka partitioner call signature. Rotates over the
    partitions that currently have a leader; when none are available it
    rotates over all partitions of the topic.
    """

    def __init__(self):
        self._counter = itertools.count()

    def __call__(
        self,
        key: Optional[bytes],
        all_partitions: List[int],
        available: Optional[List[int]],
    ) -> int:
        partitions = available or all_partitions
        if not partitions:
            raise ValueError("Topic has no partitions")
        return sorted(partitions)[next(self._counter) % len(partitions)]


__all__ = ["RoundRobinPartitioner"]

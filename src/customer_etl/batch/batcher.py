"""
Batcher: groups transformed records into sealed, numbered batches.
"""

from typing import Iterable, Iterator

from customer_etl.core.models import Batch, TransformedRecord


class Batcher:
    """
    Accumulates TransformedRecords and seals a Batch every batch_size records.

    Sequence numbers start at start_sequence and increase by one for every
    sealed batch. They are never reused, whatever happens to the batch
    afterwards. flush() seals the trailing partial batch; an empty batch is
    never produced.

    Owned by a single producer thread.
    """

    def __init__(self, batch_size: int, start_sequence: int = 1):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if start_sequence <= 0:
            raise ValueError(f"start_sequence must be positive, got {start_sequence}")
        self.batch_size = batch_size
        self._next_sequence = start_sequence
        self._pending: list[TransformedRecord] = []

    @property
    def pending(self) -> int:
        """Records accepted but not yet sealed into a batch."""
        return len(self._pending)

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    def add(self, record: TransformedRecord) -> Batch | None:
        """
        Add a record.

        Returns:
            The sealed batch if this record filled it, otherwise None
        """
        self._pending.append(record)
        if len(self._pending) >= self.batch_size:
            return self._seal()
        return None

    def flush(self) -> Batch | None:
        """Seal whatever is pending (None if nothing is)."""
        if not self._pending:
            return None
        return self._seal()

    def batches(self, records: Iterable[TransformedRecord]) -> Iterator[Batch]:
        """Batch a whole stream, including the final partial batch."""
        for record in records:
            batch = self.add(record)
            if batch is not None:
                yield batch
        batch = self.flush()
        if batch is not None:
            yield batch

    def _seal(self) -> Batch:
        batch = Batch(sequence_number=self._next_sequence, records=tuple(self._pending))
        self._next_sequence += 1
        self._pending = []
        return batch

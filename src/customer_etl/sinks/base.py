"""
Base class for relational sinks.
"""

from abc import ABC, abstractmethod
from typing import Any

from customer_etl.core.models import Batch


class RecordSink(ABC):
    """
    Abstract transactional sink.

    The loader drives one transaction per write attempt:

        txn = sink.begin_transaction()
        try:
            sink.write_batch(txn, batch)
            sink.commit(txn)
        except Exception:
            sink.rollback(txn)
            raise

    Implementations raise RetryableLoadError for transient failures
    (timeouts, dropped connections, deadlocks) and TerminalLoadError for
    failures that will not go away on retry. A sink must be safe to use from
    several loader threads at once, each with its own transaction.
    """

    name = "sink"

    @abstractmethod
    def begin_transaction(self) -> Any:
        """Start a transaction and return an opaque handle for it."""

    @abstractmethod
    def write_batch(self, txn: Any, batch: Batch) -> int:
        """
        Write every record of the batch inside the transaction.

        Returns:
            Number of records written
        """

    @abstractmethod
    def commit(self, txn: Any) -> None:
        """Make the transaction's writes visible, all or nothing."""

    @abstractmethod
    def rollback(self, txn: Any) -> None:
        """Discard the transaction's writes. Must not raise for a dead transaction."""

    def close(self) -> None:
        """Release sink resources."""

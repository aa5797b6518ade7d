"""
Transaction Registry

Assigns transaction ids and tracks the one-shot future of every in-flight
request. Only the caller that removes an entry completes it. Removal is
atomic, so a response racing a timeout or a drain can never complete a
future twice.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sowing_plc.com.core.exceptions import DuplicateTransactionError

logger = logging.getLogger(__name__)

TRANSACTION_ID_SPACE = 1 << 16


@dataclass
class PendingRequest:
    """An in-flight request waiting for its response PDU."""
    transaction_id: int
    future: asyncio.Future
    created_at: float = field(default_factory=time.monotonic)


class TransactionRegistry:
    """
    Map of transaction id to :class:`PendingRequest`.

    The id counter and the map have separate locks so id assignment never
    waits on unrelated map operations.

    :param id_space: Ids wrap at this value (default 2**16).
    :type id_space: int
    """

    def __init__(self, id_space: int = TRANSACTION_ID_SPACE):
        if not 1 < id_space <= TRANSACTION_ID_SPACE:
            raise ValueError(f"id_space must be between 2 and {TRANSACTION_ID_SPACE}")
        self._id_space = id_space
        self._last_id = 0
        self._id_lock = threading.Lock()
        self._pending: Dict[int, PendingRequest] = {}
        self._pending_lock = threading.Lock()

    def __len__(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def __contains__(self, transaction_id: int) -> bool:
        with self._pending_lock:
            return transaction_id in self._pending

    def pending_ids(self) -> List[int]:
        with self._pending_lock:
            return list(self._pending)

    def next_id(self) -> int:
        """
        Return the next transaction id.

        Ids increase by one and wrap to 0. Collisions with ids still in
        flight are not skipped, :meth:`register` detects them.
        """
        with self._id_lock:
            self._last_id = (self._last_id + 1) % self._id_space
            return self._last_id

    def register(self, transaction_id: int, future: asyncio.Future) -> PendingRequest:
        """
        Track *future* under *transaction_id*.

        :raises DuplicateTransactionError: The id is still pending.
        """
        with self._pending_lock:
            if transaction_id in self._pending:
                raise DuplicateTransactionError(transaction_id)
            pending = PendingRequest(transaction_id=transaction_id, future=future)
            self._pending[transaction_id] = pending
        return pending

    def _pop(self, transaction_id: int) -> Optional[PendingRequest]:
        with self._pending_lock:
            return self._pending.pop(transaction_id, None)

    def try_resolve(self, transaction_id: int, pdu: bytes) -> bool:
        """
        Remove the entry and complete its future with *pdu*.

        :return: ``False`` when the id is unknown or already resolved.
        """
        pending = self._pop(transaction_id)
        if pending is None or pending.future.done():
            return False
        pending.future.set_result(pdu)
        return True

    def try_reject(self, transaction_id: int, error: BaseException) -> bool:
        """
        Remove the entry and fail its future with *error*.

        :return: ``False`` when the id is unknown or already resolved.
        """
        pending = self._pop(transaction_id)
        if pending is None or pending.future.done():
            return False
        pending.future.set_exception(error)
        return True

    def drain_all(self, error: BaseException) -> int:
        """
        Remove every entry and fail each future with *error*.

        :return: Number of requests that were failed.
        """
        with self._pending_lock:
            drained = self._pending
            self._pending = {}

        failed = 0
        for pending in drained.values():
            if not pending.future.done():
                pending.future.set_exception(error)
                failed += 1

        if drained:
            logger.warning(
                "⚠️ Failed %d pending Modbus request(s): %s - %s",
                failed, type(error).__name__, error,
            )
        return failed

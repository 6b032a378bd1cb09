"""
app/services/order_message_index.py

Purpose: Order -> staff notification lookup

- Remembers which channel message announced each order
- Process-local; lost on restart
- Entries leave on completion, upgrade or the post-claim reminder.
  Orders nobody claims keep theirs until the process restarts.
"""

import threading
from typing import Dict, Optional


class OrderMessageIndex:
    """
    Thread-safe mapping of order ID to the staff-channel message handle.
    None of the methods await, so the lock is never held across I/O.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: Dict[str, str] = {}

    def put(self, order_id: str, handle: str) -> None:
        with self._lock:
            self._handles[order_id] = handle

    def get(self, order_id: str) -> Optional[str]:
        with self._lock:
            return self._handles.get(order_id)

    def delete(self, order_id: str) -> Optional[str]:
        with self._lock:
            return self._handles.pop(order_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._handles

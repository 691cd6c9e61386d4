"""
app/sales/session.py
--------------------
SaleSession — the state one terminal works on: the active draft, the
cached list of held bills, the dismissed "resume last bill?" prompt and
the per-operation busy flags.

Nothing here is global. The web layer builds one SaleSession per request
from the Flask session cookie; busy flags are shared between requests of
the same terminal through a BusyBoard (in process) or the busy_flags
table (all workers, see app/sales/busy.py).
"""
from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import List, Optional

from app.errors import BusyError
from app.sales.cart import SaleDraft

OPERATIONS = ('process', 'hold', 'resume', 'delete')


class BusyFlags:
    """One boolean per operation kind."""

    def __init__(self):
        self._active = set()
        self._lock = threading.Lock()

    def acquire(self, operation: str) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f'Unknown operation "{operation}".')
        with self._lock:
            if operation in self._active:
                raise BusyError(operation)
            self._active.add(operation)

    def release(self, operation: str) -> None:
        with self._lock:
            self._active.discard(operation)

    def is_set(self, operation: Optional[str] = None) -> bool:
        with self._lock:
            if operation is None:
                return bool(self._active)
            return operation in self._active


class BusyBoard:
    """BusyFlags per terminal id, for the lifetime of the worker process."""

    def __init__(self):
        self._flags = {}
        self._lock = threading.Lock()

    def flags_for(self, session_id: str) -> BusyFlags:
        with self._lock:
            if session_id not in self._flags:
                self._flags[session_id] = BusyFlags()
            return self._flags[session_id]

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._flags.pop(session_id, None)


class SaleSession:

    def __init__(self, draft: Optional[SaleDraft] = None, held_bills: Optional[List] = None,
                 dismissed_prompt_id: Optional[str] = None, busy: Optional[BusyFlags] = None):
        self.draft = draft if draft is not None else SaleDraft()
        self.held_bills = list(held_bills or [])
        self.dismissed_prompt_id = dismissed_prompt_id
        self.busy = busy if busy is not None else BusyFlags()

    @contextmanager
    def operation(self, name: str):
        """Hold the busy flag for `name` while the block runs."""
        self.busy.acquire(name)
        try:
            yield
        finally:
            self.busy.release(name)

    @property
    def is_loading(self) -> bool:
        return self.busy.is_set()

    def to_dict(self) -> dict:
        """Cookie form; the held-bill cache is refetched, never stored."""
        return {
            'draft':               self.draft.to_dict(),
            'dismissed_prompt_id': self.dismissed_prompt_id,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict], busy: Optional[BusyFlags] = None) -> 'SaleSession':
        data = data or {}
        return cls(
            draft=SaleDraft.from_dict(data.get('draft')),
            dismissed_prompt_id=data.get('dismissed_prompt_id'),
            busy=busy,
        )

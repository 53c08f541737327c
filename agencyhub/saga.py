"""
Compensating-transaction helper.

A Saga runs named steps in order. Each step may register an undo action;
when a later step fails, the undo actions of the completed steps run in
reverse order and the original error is re-raised. An undo that itself
fails leaves the remote store inconsistent; that is logged at CRITICAL and
recorded on the saga so the caller can report it.

    saga = Saga("convert_lead")
    client_row = saga.step("create_client", create, undo=delete_client)
    saga.step("link_lead", link)
"""

import logging
from typing import Callable, Optional

log = logging.getLogger("agency.saga")


class Saga:

    def __init__(self, name: str, on_transition: Callable[[str], None] = None):
        self.name = name
        self.completed: list[str] = []
        self.compensation_failures: list[tuple] = []
        self._undo: list[tuple] = []
        self._on_transition = on_transition

    def step(self, name: str, action: Callable[[], object],
             undo: Optional[Callable[[object], None]] = None):
        """Run action. On failure compensate everything done so far and re-raise."""
        if self._on_transition:
            self._on_transition(name)
        try:
            result = action()
        except Exception as e:
            log.warning("%s: step %s failed: %s: compensating %d step(s)",
                        self.name, name, e, len(self._undo))
            self.compensate()
            raise
        self.completed.append(name)
        if undo is not None:
            self._undo.append((name, undo, result))
        return result

    def compensate(self):
        while self._undo:
            name, undo, result = self._undo.pop()
            try:
                undo(result)
                log.info("%s: compensated %s", self.name, name)
            except Exception as e:
                self.compensation_failures.append((name, e))
                log.critical("%s: FATAL INCONSISTENCY: could not undo %s: %s",
                             self.name, name, e)

    @property
    def consistent(self) -> bool:
        return not self.compensation_failures

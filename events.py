"""In-process notifications from the engine to whatever UI is listening.

The engine never touches haptics, sounds or screens. It emits named events and
the host decides how to react (a toast, a vibration, a chime).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

CHECK_IN_SAVED = "check_in_saved"
BLOCK_COMPLETED = "block_completed"
CHAIN_STARTED = "chain_started"
CHAIN_ENDED = "chain_ended"
FALLBACK_USED = "fallback_used"
FLOW_ABORTED = "flow_aborted"

Handler = Callable[..., Any]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, name: str, handler: Handler) -> None:
        if handler not in self._handlers[name]:
            self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._handlers.get(name, []):
            self._handlers[name].remove(handler)

    def emit(self, name: str, **payload: Any) -> int:
        """Call every handler for ``name``; return how many ran without error."""
        delivered = 0
        for handler in list(self._handlers.get(name, [])):
            try:
                handler(**payload)
            except Exception:
                logger.exception("Listener %r failed on %s", handler, name)
                continue
            delivered += 1
        return delivered

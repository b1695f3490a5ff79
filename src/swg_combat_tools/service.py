"""
Background parse worker.

Callers never share state with a running parse. They submit raw text and
read messages back from the worker's outbox:

    {"type": "progress", "request_id": ..., "done": n, "total": m}   (zero or more)
    {"type": "done", "request_id": ..., "payload": {...}}            (terminal)
    {"type": "error", "request_id": ..., "reason": "..."}            (terminal)

Every request ends with exactly one terminal message.
"""

import itertools
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from .analysis.segmenter import Segmenter
from .log.canonical import CanonContext
from .log.parser import CombatLogParser

logger = logging.getLogger(__name__)

PROGRESS = 'progress'
DONE = 'done'
ERROR = 'error'
TERMINAL_TYPES = (DONE, ERROR)


class ParseWorker:
    """
    Runs parse passes on a single background thread.

    The canonicalization context is kept for the life of the worker, so
    repeated parses of the same log session resolve names the same way.

    Args:
        config: Configuration dictionary passed to the parser and segmenter
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.canon = CanonContext.from_config(self.config)
        self.outbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._pending: Dict[int, List[Dict[str, Any]]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='combat-parse')
        return self._executor

    def submit(self, text: str, collect_unparsed: bool = False) -> int:
        """
        Queue a parse pass.

        Args:
            text: Raw log text
            collect_unparsed: Sample unrecognized lines into the debug block

        Returns:
            Request id used on every message of this request
        """
        request_id = next(self._ids)
        try:
            executor = self._ensure_executor()
            executor.submit(self._run, request_id, text, collect_unparsed)
        except Exception as e:
            logger.error(f"Could not start parse request {request_id}: {e}")
            self._post({'type': ERROR, 'request_id': request_id, 'reason': f"worker unavailable: {e}"})
        return request_id

    def _post(self, message: Dict[str, Any]):
        self.outbox.put(message)

    def _run(self, request_id: int, text: str, collect_unparsed: bool):
        def progress(done: int, total: int):
            self._post({'type': PROGRESS, 'request_id': request_id, 'done': done, 'total': total})

        try:
            parser = CombatLogParser(self.config, canon=self.canon)
            outcome = parser.parse_text(text, collect_unparsed=collect_unparsed, progress=progress)
            aggregate = outcome.folded()
            payload = aggregate.to_payload(outcome.summary, collect_unparsed, outcome.canon)
            segments = Segmenter.from_config(self.config).derive(aggregate.timeline(), aggregate.store.damage)
            payload['segments'] = [segment.to_dict() for segment in segments]
        except Exception as e:
            logger.error(f"Parse request {request_id} failed: {e}")
            self._post({'type': ERROR, 'request_id': request_id, 'reason': str(e) or type(e).__name__})
            return

        self._post({'type': DONE, 'request_id': request_id, 'payload': payload})

    def wait_for(self, request_id: int, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        Collect the messages of one request up to and including its terminal message.

        Messages for other requests read along the way are kept for their
        own wait_for() call.

        Args:
            request_id: Id returned by submit()
            timeout: Seconds to wait overall; None waits indefinitely

        Returns:
            Messages in arrival order

        Raises:
            TimeoutError: If the terminal message did not arrive in time
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            collected = self._pending.pop(request_id, [])

        while not collected or collected[-1]['type'] not in TERMINAL_TYPES:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise TimeoutError(f"No terminal message for request {request_id}")
            try:
                message = self.outbox.get(timeout=remaining)
            except queue.Empty:
                raise TimeoutError(f"No terminal message for request {request_id}")

            if message['request_id'] == request_id:
                collected.append(message)
            else:
                with self._lock:
                    self._pending.setdefault(message['request_id'], []).append(message)

        return collected

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

"""Async decode session with request identity.

Each submitted blob gets a monotonically increasing request id. A worker
thread decodes it and posts a message to a queue; the UI thread drains the
queue with :meth:`DecodeSession.poll`. Only the completion whose id matches
the latest submitted request is handed back; stale ones are discarded.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from shukusho_resizer.errors import DecodeFailure, ShukushoError
from shukusho_resizer.image_source import ImageBlob, ImageSource, SourceImage

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 40
POLL_BATCH_LIMIT = 30

WorkerRunner = Callable[[Callable[[], None]], None]


@dataclass(frozen=True)
class DecodeCompletion:
    request_id: int
    source: Optional[SourceImage] = None
    error: Optional[ShukushoError] = None

    @property
    def ok(self) -> bool:
        return self.source is not None


def start_daemon_thread(target: Callable[[], None]) -> None:
    worker = threading.Thread(target=target, daemon=True, name="shukusho-decoder")
    worker.start()


class DecodeSession:
    def __init__(self, image_source: ImageSource, *, run_worker: Optional[WorkerRunner] = None) -> None:
        self._image_source = image_source
        self._run_worker = run_worker or start_daemon_thread
        self._queue: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._latest_request_id = 0
        self._pending = False

    @property
    def latest_request_id(self) -> int:
        return self._latest_request_id

    @property
    def pending(self) -> bool:
        return self._pending

    def submit(self, blob: ImageBlob) -> int:
        self._latest_request_id += 1
        request_id = self._latest_request_id
        self._pending = True
        logger.debug("decode request #%d: %s", request_id, blob.name)
        self._run_worker(lambda: self._decode_worker(request_id, blob))
        return request_id

    def poll(self, limit: int = POLL_BATCH_LIMIT) -> List[DecodeCompletion]:
        """Drain finished decodes; returns only completions for the latest request."""
        accepted: List[DecodeCompletion] = []
        handled = 0
        while handled < limit:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                break
            handled += 1
            completion = self._handle_message(message)
            if completion is not None:
                accepted.append(completion)
        return accepted

    def _handle_message(self, message: Dict[str, Any]) -> Optional[DecodeCompletion]:
        request_id = int(message.get("request_id", 0))
        msg_type = str(message.get("type", ""))
        if request_id != self._latest_request_id:
            logger.debug("discarding stale decode #%d (latest #%d)", request_id, self._latest_request_id)
            source = message.get("source")
            if isinstance(source, SourceImage):
                source.close()
            return None

        self._pending = False
        if msg_type == "loaded":
            return DecodeCompletion(request_id=request_id, source=message["source"])
        return DecodeCompletion(request_id=request_id, error=message.get("error"))

    def _decode_worker(self, request_id: int, blob: ImageBlob) -> None:
        try:
            source = self._image_source.decode(blob)
        except ShukushoError as exc:
            self._queue.put({"type": "load_error", "request_id": request_id, "error": exc})
        except Exception as exc:
            logger.exception("unexpected decode error for %s", blob.name)
            self._queue.put({"type": "load_error", "request_id": request_id, "error": DecodeFailure(str(exc))})
        else:
            self._queue.put({"type": "loaded", "request_id": request_id, "source": source})

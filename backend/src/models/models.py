import asyncio
import logging
import secrets
import threading
from typing import Dict, List, Optional

from utilities import INBOUND_QUEUE_SIZE, SUBSCRIBER_QUEUE_SIZE

logger = logging.getLogger(__name__)

# ------------ In-memory structures ------------
class Listener:
    ''' One browser session waiting for webhook payloads.'''

    def __init__(self, idx: int, maxsize: int = SUBSCRIBER_QUEUE_SIZE):

        self.idx = idx

        # per listener message buffer, filled by the broadcaster and drained
        # by the /logs handler; None is the close sentinel
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def offer(self, message: str) -> bool:
        """Non-blocking enqueue. False when the queue is full or closed."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self):
        """Discard pending messages and wake the reader with the sentinel."""
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self.queue.put_nowait(None)


class ListenerRegistry:
    ''' Session id -> Listener, guarded by a single lock.

    Critical sections only touch the map and do non-blocking queue operations,
    so the lock is never held across an await.
    '''

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._listeners: Dict[int, Listener] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _new_id(self) -> int:
        # caller holds the lock
        while True:
            idx = secrets.randbits(63)
            if idx and idx not in self._listeners:
                return idx

    def add_listener(self) -> Listener:
        with self._lock:
            listener = Listener(self._new_id(), self.queue_size)
            self._listeners[listener.idx] = listener
        logger.info("Adding a listener idx=%d", listener.idx)
        return listener

    def get_listener(self, idx: int) -> Optional[Listener]:
        with self._lock:
            listener = self._listeners.get(idx)
        logger.debug("Getting listener idx=%d found=%s", idx, listener is not None)
        return listener

    def remove_listener(self, idx: int) -> Optional[Listener]:
        with self._lock:
            listener = self._listeners.pop(idx, None)
        if listener is not None:
            logger.info("Removing a listener idx=%d", idx)
        return listener

    def fan_out(self, message: str) -> int:
        """Offer message to every listener registered right now.

        A listener whose queue is full is disconnected so the others keep
        receiving. Returns the number of listeners the message reached.
        """
        delivered = 0
        slow: List[Listener] = []
        with self._lock:
            for idx, listener in self._listeners.items():
                logger.debug("Forwarding the message idx=%d", idx)
                if listener.offer(message):
                    delivered += 1
                else:
                    slow.append(listener)
            for listener in slow:
                self._listeners.pop(listener.idx, None)
                listener.close()
        for listener in slow:
            logger.warning("Disconnecting slow listener idx=%d (queue full)", listener.idx)
        return delivered

    def close_all(self):
        with self._lock:
            listeners = list(self._listeners.values())
            self._listeners.clear()
            for listener in listeners:
                listener.close()
        if listeners:
            logger.info("Closed %d listener(s)", len(listeners))


class Broadcaster:
    ''' Single worker replicating inbound messages onto every listener queue.'''

    def __init__(self, registry: ListenerRegistry, maxsize: int = INBOUND_QUEUE_SIZE):
        self.registry = registry
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.task: Optional[asyncio.Task] = None

        # stats
        self.published = 0
        self.delivered = 0

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def publish(self, message: str):
        # blocks only while the inbound queue is at capacity
        await self.queue.put(message)
        self.published += 1

    def start(self) -> asyncio.Task:
        # at most one worker per broadcaster
        if self.running:
            return self.task
        self.task = asyncio.create_task(self.run(), name="broadcaster")
        logger.info("Broadcaster started")
        return self.task

    async def stop(self):
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None
        logger.info("Broadcaster stopped")

    async def join(self):
        """Wait until every published message has been fanned out."""
        await self.queue.join()

    async def run(self):
        while True:
            message = await self.queue.get()
            try:
                self.delivered += self.registry.fan_out(message)
            except Exception:
                logger.exception("Failed to fan out a message (continuing)")
            finally:
                self.queue.task_done()

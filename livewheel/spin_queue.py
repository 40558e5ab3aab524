from collections import deque


class SpinQueue:
    """
    Unbounded FIFO of pending spin requests.

    Enqueue never rejects, blocks or looks at the request: a burst of gifts
    during a spin simply grows the queue. Arrival order is playback order.
    """

    def __init__(self):
        self._items = deque()

    def enqueue(self, request):
        self._items.append(request)

    def has_pending(self):
        return bool(self._items)

    def peek_front(self):
        return self._items[0] if self._items else None

    def dequeue_front(self):
        # IndexError on empty, like deque.popleft
        return self._items.popleft()

    def snapshot(self):
        return list(self._items)

    def __len__(self):
        return len(self._items)

import numpy as np


class CircularAllocator:
    """
    Maps bulk writes onto rows of a circular buffer.

    Keeps the write cursor (``next_ind``, 0-based) and the number of valid
    rows (``elements``). Writing past the end wraps around and overwrites the
    oldest rows.
    """
    def __init__(self, capacity: int, elements: int = 0, next_ind: int = 0):
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        if not 0 <= elements <= capacity:
            raise ValueError(f"elements={elements} must lie in [0, {capacity}]")
        self.capacity = capacity
        self.elements = elements
        self.next_ind = next_ind % capacity

    def allocate(self, n: int):
        """
        Reserve n rows starting at the cursor.

        Returns:
            np.ndarray: The n target rows, ``(next_ind + k) % capacity``. When n
            exceeds capacity the same row appears more than once.
        """
        if n < 0:
            raise ValueError(f"Cannot allocate a negative number of rows ({n})")
        rows = (self.next_ind + np.arange(n)) % self.capacity
        self.elements = min(self.capacity, self.elements + n)
        self.next_ind = (self.next_ind + n) % self.capacity
        return rows

    def reset(self):
        self.elements = 0
        self.next_ind = 0

    @property
    def full(self):
        return self.elements >= self.capacity

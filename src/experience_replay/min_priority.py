import numpy as np


class MinPriorityTracker:
    """
    Indexed binary min-heap over the slots of a SumTree.

    Every slot owns exactly one heap entry (initialised to +inf), so updating
    a slot re-keys its entry in place instead of pushing a duplicate.
    Positions are 1-based to line up with SumTree.

    Parameters:
        capacity (int): Number of slots.
    """
    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"MinPriorityTracker capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.heap = np.full(capacity, np.inf, dtype=np.float64)
        # heap position -> slot and slot -> heap position
        self.slots = np.arange(1, capacity + 1)
        self.positions = np.arange(capacity + 1) - 1

    def _swap(self, a, b):
        self.heap[a], self.heap[b] = self.heap[b], self.heap[a]
        self.slots[a], self.slots[b] = self.slots[b], self.slots[a]
        self.positions[self.slots[a]] = a
        self.positions[self.slots[b]] = b

    def _sift_up(self, idx):
        while idx > 0:
            parent = (idx - 1) // 2
            if self.heap[idx] >= self.heap[parent]:
                break
            self._swap(idx, parent)
            idx = parent

    def _sift_down(self, idx):
        size = self.capacity
        while True:
            left = 2 * idx + 1
            right = left + 1
            smallest = idx
            if left < size and self.heap[left] < self.heap[smallest]:
                smallest = left
            if right < size and self.heap[right] < self.heap[smallest]:
                smallest = right
            if smallest == idx:
                break
            self._swap(idx, smallest)
            idx = smallest

    def _check_slot(self, i):
        if i < 1 or i > self.capacity:
            raise IndexError(f"Slot {i} out of range [1, {self.capacity}]")

    def update(self, i, value):
        """Set the priority of slot i and restore the heap order."""
        i = int(i)
        self._check_slot(i)
        idx = self.positions[i]
        old = self.heap[idx]
        self.heap[idx] = value
        if value < old:
            self._sift_up(idx)
        else:
            self._sift_down(idx)

    def get(self, i):
        """Return the current priority of slot i."""
        i = int(i)
        self._check_slot(i)
        return self.heap[self.positions[i]]

    def peek_min(self):
        """Return the smallest priority currently held."""
        return self.heap[0]

    top = peek_min

    def __len__(self):
        return self.capacity

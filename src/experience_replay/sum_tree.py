import numpy as np


class SumTree:
    """
    A sum tree (Fenwick / binary indexed tree) for priority-based sampling.
    Used internally by the ExperienceBuffer.

    Positions are 1-based, as is usual for Fenwick trees: leaf ``i`` lives in
    ``[1, capacity]`` and ``prefix_sum(0)`` is always zero.

    Parameters:
        capacity (int): Number of leaves.
    """
    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"SumTree capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.tree = np.zeros(capacity + 1, dtype=np.float64)

    def _check_position(self, i):
        if i < 1 or i > self.capacity:
            raise IndexError(f"Position {i} out of range [1, {self.capacity}]")

    def inc(self, i, delta):
        """Add delta to leaf i."""
        i = int(i)
        self._check_position(i)
        while i <= self.capacity:
            self.tree[i] += delta
            i += i & (-i)

    def prefix_sum(self, i):
        """Return the sum of leaves 1..i."""
        i = int(i)
        if i < 0 or i > self.capacity:
            raise IndexError(f"Prefix {i} out of range [0, {self.capacity}]")
        total = 0.0
        while i > 0:
            total += self.tree[i]
            i -= i & (-i)
        return total

    def get(self, i):
        """Return the value of leaf i."""
        i = int(i)
        self._check_position(i)
        return self.prefix_sum(i) - self.prefix_sum(i - 1)

    __getitem__ = get

    def update(self, i, value):
        """Set leaf i to value."""
        self.inc(i, value - self.get(i))

    def total(self):
        """Return the total sum of all leaves."""
        return self.prefix_sum(self.capacity)

    def inverse_query(self, v, n=None):
        """
        Return the smallest position whose prefix sum reaches v.

        Walks down the implicit tree one bit at a time instead of scanning
        leaves, so the query is O(log n). Only positions up to ``n`` are
        considered for the walk, which means the result lies in ``[1, n + 1]``.
        A v above ``prefix_sum(n)`` gives ``n + 1``, which is only a valid
        position while ``n < capacity``.

        Parameters:
            v (float): Target cumulative mass, ``0 <= v <= prefix_sum(n)``.
            n (int, optional): Upper bound of the walk. Defaults to capacity.

        Returns:
            int: 1-based position.

        Raises:
            ValueError: If v exceeds the total mass of the tree.
        """
        n = self.capacity if n is None else int(n)
        if n < 0 or n > self.capacity:
            raise IndexError(f"Bound {n} out of range [0, {self.capacity}]")
        tot, pos = 0.0, 0
        for bit in range(n.bit_length() - 1, -1, -1):
            new_pos = pos + (1 << bit)
            if new_pos <= n and tot + self.tree[new_pos] < v:
                tot += self.tree[new_pos]
                pos = new_pos
        if pos == self.capacity:
            raise ValueError(f"Value {v} exceeds the total mass {self.total()}")
        return pos + 1

    def leaves(self):
        """Return every leaf value as an array (index 0 is position 1)."""
        return np.array([self.get(i) for i in range(1, self.capacity + 1)])

    def __len__(self):
        return self.capacity

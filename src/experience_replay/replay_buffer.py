"""
Experience buffer for reinforcement learning.

A fixed-capacity store of transition records kept as parallel torch columns.
Writes past capacity wrap around and overwrite the oldest rows. A buffer can
optionally be prioritized, in which case every row carries a priority kept in
a SumTree (for sampling) and a MinPriorityTracker (for importance weight
normalization).

Rows are 0-based. The priority structures use 1-based positions, row ``r``
lives at position ``r + 1``.
"""

import copy

import numpy as np
import torch

from .allocator import CircularAllocator
from .columns import ColumnStore, column_specs
from .episode_index import episodes
from .logger import get_logger
from .min_priority import MinPriorityTracker
from .schedules import ConstantSchedule
from .sum_tree import SumTree


logger = get_logger()

# Added to every raw priority so no row is starved
PRIORITY_EPS = float(np.finfo(np.float32).eps)


def _to_numpy(x, dtype=None):
    if torch.is_tensor(x):
        x = x.detach().cpu().numpy()
    return np.asarray(x, dtype=dtype).reshape(-1)


class ExperienceBuffer:
    """
    Circular, column-oriented experience buffer with optional prioritization.

    Parameters:
        state_space: Object exposing ``dims`` and ``dtype`` for states.
        action_space: Object exposing ``dims`` and ``dtype`` for actions.
        capacity (int): Number of rows.
        extras (iterable of str): Extra columns among 'return', 'logprob',
            'advantage', 'weight', 'episode_end', 't', 's0'.
        device (torch.device or str): Where the columns live.
        prioritized (bool): Keep per-row priorities. Adds a 'weight' column.
        alpha (float): Prioritization exponent (0=uniform, 1=full prioritization).
        beta (callable): Importance sampling exponent as a function of the step.
        max_priority (float): Priority given to freshly pushed rows.
        reward_dtype (torch.dtype): dtype of rewards and reward-like extras.
        done_dtype (torch.dtype): dtype of the done flag.
        numpy_rng (np.random.Generator): Random number generator for sampling.
    """

    def __init__(self, state_space, action_space, capacity: int, extras=(),
                 device=torch.device('cpu'), prioritized: bool = False,
                 alpha: float = 0.6, beta=None, max_priority: float = 1.0,
                 reward_dtype=torch.float32, done_dtype=torch.bool, numpy_rng=None):
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        extras = list(extras)
        if prioritized and 'weight' not in extras:
            extras.append('weight')
        specs = column_specs(state_space, action_space, extras,
                             reward_dtype=reward_dtype, done_dtype=done_dtype)
        data = ColumnStore.allocate(specs, capacity, device=torch.device(device))
        self._setup(data, 0, 0, prioritized, alpha, beta, max_priority, numpy_rng)
        logger.verbose(f"Created {self!r} with columns {list(self.keys())}")

    def _setup(self, data, elements, next_ind, prioritized, alpha, beta, max_priority, numpy_rng):
        self.data = data
        self.allocator = CircularAllocator(data.capacity, elements, next_ind)
        self.indices = np.empty(0, dtype=np.int64)
        self.alpha = alpha
        self.beta = ConstantSchedule(0.5) if beta is None else beta
        self.initial_max_priority = max_priority
        self.max_priority = max_priority
        self.numpy_rng = np.random.default_rng() if numpy_rng is None else numpy_rng
        self.priorities = None
        self.minsort_priorities = None
        if prioritized:
            if 'weight' not in data:
                raise ValueError("A prioritized buffer needs a 'weight' column")
            self._reset_priorities()

    @classmethod
    def from_data(cls, data, elements=None, next_ind=None, prioritized=False, alpha=0.6,
                  beta=None, max_priority=1.0, numpy_rng=None):
        """
        Wrap already filled columns in a buffer.

        Parameters:
            data (dict or ColumnStore): Column tensors sharing their first dimension.
            elements (int, optional): Number of valid rows. Defaults to all rows.
            next_ind (int, optional): Write cursor. Defaults to ``elements % capacity``.

        When prioritized, the valid rows start at ``max_priority``.
        """
        if not isinstance(data, ColumnStore):
            data = ColumnStore({k: v if torch.is_tensor(v) else torch.as_tensor(np.asarray(v))
                                for k, v in data.items()})
        elements = data.capacity if elements is None else elements
        next_ind = elements % data.capacity if next_ind is None else next_ind
        buffer = cls.__new__(cls)
        buffer._setup(data, elements, next_ind, prioritized, alpha, beta, max_priority, numpy_rng)
        if buffer.prioritized and elements > 0:
            buffer.update_priorities(np.arange(elements), np.full(elements, max_priority))
        return buffer

    def _reset_priorities(self):
        self.priorities = SumTree(self.capacity)
        self.minsort_priorities = MinPriorityTracker(self.capacity)

    @property
    def elements(self):
        return self.allocator.elements

    @property
    def next_ind(self):
        return self.allocator.next_ind

    @property
    def capacity(self):
        return self.data.capacity

    @property
    def prioritized(self):
        return self.priorities is not None

    @property
    def device(self):
        return self.data.device

    def __len__(self):
        return self.allocator.elements

    def __getitem__(self, key):
        """Valid rows of a column."""
        return self.data[key][:self.elements]

    def __contains__(self, key):
        return key in self.data

    def keys(self):
        return self.data.keys()

    def dim(self, key):
        """Size of the first element dimension of a column."""
        return self.data[key].shape[1]

    def episodes(self):
        return episodes(self)

    def minibatch(self, indices):
        """Return a dict of column tensors at the given rows."""
        return {k: self.data.read(k, _to_numpy(indices, np.int64)) for k in self.keys()}

    def clear(self):
        """
        Forget every stored row.

        Priority structures are rebuilt from scratch (zero mass, +inf minimum)
        and max_priority returns to its initial value.
        """
        self.allocator.reset()
        self.indices = np.empty(0, dtype=np.int64)
        if self.prioritized:
            self._reset_priorities()
            self.max_priority = self.initial_max_priority
        logger.verbose(f"Cleared {self!r}")
        return self

    def push(self, records, ids=None):
        """
        Copy rows of records into the buffer at the write cursor.

        Parameters:
            records (dict or ExperienceBuffer): Column name -> array-like with
                rows along the first axis. Only columns present on both sides
                are copied. An ExperienceBuffer contributes its valid rows.
            ids (array-like, optional): Rows of records to copy, in order.
                Defaults to every row.

        Returns:
            np.ndarray: The buffer rows written, one per id. When more ids than
            capacity are given, only the last ``capacity`` writes remain.
        """
        keys = [k for k in self.keys() if k in records]
        if ids is None:
            if isinstance(records, ExperienceBuffer):
                n = len(records)
            else:
                if len(records) == 0:
                    raise ValueError("Cannot push an empty set of records")
                n = len(records[next(iter(records.keys()))])
            ids = np.arange(n)
        else:
            ids = _to_numpy(ids, np.int64)

        N = len(ids)
        keep = slice(max(0, N - self.capacity), N)
        # Every column is gathered and shaped before the cursor moves
        values = {}
        for k in keys:
            source = records[k]
            if not torch.is_tensor(source):
                source = torch.as_tensor(np.asarray(source))
            if N > 0 and (ids.min() < 0 or ids.max() >= len(source)):
                raise IndexError(f"Record ids must lie in [0, {len(source)}) for column '{k}', got {ids}")
            source_rows = torch.as_tensor(ids[keep], dtype=torch.long, device=source.device)
            values[k] = self.data.prepare(k, source[source_rows])

        rows = self.allocator.allocate(N)
        for k, v in values.items():
            self.data.write(k, rows[keep], v)

        if self.prioritized:
            self.update_priorities(rows[keep], np.full(len(rows[keep]), self.max_priority))
        return rows

    def update_priorities(self, indices, values):
        """
        Set the priority of each row in indices to ``(value + eps) ** alpha``.

        The SumTree and the MinPriorityTracker are always updated together.

        Parameters:
            indices (array-like): Buffer rows.
            values (array-like): Non-negative raw priorities (e.g. |TD error|).

        Raises:
            IndexError: If a row is not one of the valid rows. Nothing is updated.
        """
        if not self.prioritized:
            raise ValueError("Cannot update priorities of a buffer that is not prioritized")
        indices = _to_numpy(indices, np.int64)
        values = _to_numpy(values, np.float64)
        if len(indices) != len(values):
            raise ValueError(f"Got {len(indices)} indices but {len(values)} priorities")
        if np.any(indices < 0) or np.any(indices >= len(self)):
            raise IndexError(f"Priority rows must lie in [0, {len(self)}), got {indices}")
        if np.any(values < 0) or not np.all(np.isfinite(values)):
            raise ValueError("Priorities must be finite and non-negative")
        for i, v in zip(indices, values):
            val = float(v) + PRIORITY_EPS
            p = val ** self.alpha
            self.priorities.update(i + 1, p)
            self.minsort_priorities.update(i + 1, p)
            self.max_priority = max(self.max_priority, val)

    def priority(self, row):
        """Current priority (already raised to alpha) of a row."""
        return self.minsort_priorities.get(int(row) + 1)

    def _copy_priorities_to(self, other, rows=None, new_rows=None):
        rows = np.arange(self.capacity) if rows is None else rows
        new_rows = rows if new_rows is None else new_rows
        values = [self.minsort_priorities.get(r + 1) for r in rows]
        for r, p in zip(new_rows, values):
            if np.isfinite(p):
                other.priorities.update(r + 1, p)
                other.minsort_priorities.update(r + 1, p)

    def shuffle(self):
        """
        Permute the valid rows of every column with one shared permutation.

        Priorities follow their rows.
        """
        n = len(self)
        perm = self.numpy_rng.permutation(n)
        self.data.permute(perm)
        if self.prioritized:
            self._copy_priorities_to(self, rows=perm, new_rows=np.arange(n))
        logger.debug(f"Shuffled {n} rows")

    def to_device(self, device):
        """
        Deep copy of the buffer with every column moved to device.

        Bookkeeping and hyper-parameters are carried over; priority structures
        are rebuilt with the same per-row priorities. The copy gets its own
        random generator, starting from the current state of this one.
        """
        device = torch.device(device)
        new = ExperienceBuffer.__new__(ExperienceBuffer)
        new._setup(self.data.transfer(device), self.elements, self.next_ind, self.prioritized,
                   self.alpha, self.beta, self.initial_max_priority, copy.deepcopy(self.numpy_rng))
        new.max_priority = self.max_priority
        new.indices = self.indices.copy()
        if self.prioritized:
            self._copy_priorities_to(new)
        logger.verbose(f"Copied {self!r} to {device}")
        return new

    def buffer_info(self):
        """
        Returns information about the current buffer state.
        """
        info = {
            'buffer_type': 'PER' if self.prioritized else 'Standard',
            'buffer_size': self.elements,
            'buffer_capacity': self.capacity,
            'buffer_filled': self.allocator.full,
            'next_ind': self.next_ind,
        }
        if self.prioritized:
            info['max_priority'] = self.max_priority
            info['total_priority'] = self.priorities.total()
            info['min_priority'] = self.minsort_priorities.peek_min()
        return info

    def __repr__(self):
        kind = 'prioritized ' if self.prioritized else ''
        return f"ExperienceBuffer({kind}{self.elements}/{self.capacity} on {self.device})"


def buffer_like(buffer, capacity=None, device=None):
    """
    Empty buffer with the same columns and priority settings as buffer.

    Parameters:
        buffer (ExperienceBuffer): Template.
        capacity (int, optional): Rows of the new buffer. Defaults to the template's.
        device (torch.device, optional): Defaults to the template's device.
    """
    capacity = buffer.capacity if capacity is None else capacity
    data = buffer.data.empty_like(capacity, device=device)
    return ExperienceBuffer.from_data(data, elements=0, next_ind=0, prioritized=buffer.prioritized,
                                      alpha=buffer.alpha, beta=buffer.beta,
                                      max_priority=buffer.initial_max_priority,
                                      numpy_rng=buffer.numpy_rng)

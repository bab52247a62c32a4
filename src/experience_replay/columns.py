"""
Column storage for transition records.

Each column is a pre-allocated tensor of shape ``(capacity, *element_shape)``;
row ``i`` across every column forms one transition. The set of columns is
fixed when the store is built: the core columns plus any of the recognized
extras below.
"""

from collections import OrderedDict, namedtuple

import numpy as np
import torch


ColumnSpec = namedtuple('ColumnSpec', ['name', 'shape', 'dtype', 'fill'])

CORE_COLUMNS = ('s', 'a', 'sp', 'r', 'done')

EXTRA_COLUMNS = ('return', 'logprob', 'advantage', 'weight', 'episode_end', 't', 's0')

# Every other column starts at zero
COLUMN_FILLS = {'weight': 1}


def column_specs(state_space, action_space, extras=(), reward_dtype=torch.float32,
                 done_dtype=torch.bool):
    """
    Declares the columns of a buffer.

    Parameters:
        state_space: Object exposing ``dims`` and ``dtype`` for states.
        action_space: Object exposing ``dims`` and ``dtype`` for actions.
        extras (iterable of str): Additional columns, each one of EXTRA_COLUMNS.
        reward_dtype (torch.dtype): dtype of rewards and reward-like extras.
        done_dtype (torch.dtype): dtype of the done flag.

    Returns:
        list of ColumnSpec

    Raises:
        ValueError: If an extra column name is not recognized.
    """
    specs = [
        ColumnSpec('s', tuple(state_space.dims), state_space.dtype, 0),
        ColumnSpec('a', tuple(action_space.dims), action_space.dtype, 0),
        ColumnSpec('sp', tuple(state_space.dims), state_space.dtype, 0),
        ColumnSpec('r', (1,), reward_dtype, 0),
        ColumnSpec('done', (1,), done_dtype, 0),
    ]
    seen = set(CORE_COLUMNS)
    for k in extras:
        if k in seen:
            continue
        seen.add(k)
        if k in ('return', 'logprob', 'advantage'):
            specs.append(ColumnSpec(k, (1,), reward_dtype, 0))
        elif k == 'weight':
            specs.append(ColumnSpec(k, (1,), reward_dtype, COLUMN_FILLS[k]))
        elif k == 'episode_end':
            specs.append(ColumnSpec(k, (1,), torch.bool, 0))
        elif k == 't':
            specs.append(ColumnSpec(k, (1,), torch.int64, 0))
        elif k == 's0':
            specs.append(ColumnSpec(k, tuple(state_space.dims), state_space.dtype, 0))
        else:
            raise ValueError(f"Unrecognized key: {k}. Authorized extras are: {', '.join(EXTRA_COLUMNS)}.")
    return specs


def transfer(tensor, device):
    """Deep copy of a tensor onto device. The only way columns move between locations."""
    return tensor.to(device, copy=True)


class ColumnStore:
    """
    Named, fixed-length parallel tensors sharing one row count.

    Parameters:
        columns (dict): Mapping name -> tensor, all with the same first dimension.
    """
    def __init__(self, columns):
        if len(columns) == 0:
            raise ValueError("A ColumnStore needs at least one column")
        self.columns = OrderedDict(columns)
        rows = {v.shape[0] for v in self.columns.values()}
        if len(rows) != 1:
            raise ValueError(f"All columns must share the same number of rows, got {sorted(rows)}")
        self.capacity = rows.pop()

    @classmethod
    def allocate(cls, specs, capacity: int, device=torch.device('cpu')):
        """Pre-allocate one tensor per ColumnSpec, filled with the spec's fill value."""
        return cls(OrderedDict(
            (spec.name, torch.full((capacity, *spec.shape), spec.fill, dtype=spec.dtype, device=device))
            for spec in specs
        ))

    @property
    def device(self):
        return next(iter(self.columns.values())).device

    def keys(self):
        return self.columns.keys()

    def items(self):
        return self.columns.items()

    def __contains__(self, name):
        return name in self.columns

    def __getitem__(self, name):
        return self.columns[name]

    def __iter__(self):
        return iter(self.columns)

    def __len__(self):
        return len(self.columns)

    def prepare(self, name, values):
        """
        Cast values to the dtype and device of a column and reshape them to
        ``(n, *element_shape)``.

        Values may be a tensor on any device, a numpy array or a list, so a flat
        sequence can fill a ``(capacity, 1)`` column.
        """
        column = self.columns[name]
        if not torch.is_tensor(values):
            values = torch.as_tensor(np.asarray(values))
        values = values.to(device=column.device, dtype=column.dtype)
        return values.reshape(len(values), *column.shape[1:])

    def write(self, name, rows, values):
        """Copy values into the given rows of a column."""
        column = self.columns[name]
        rows = torch.as_tensor(np.asarray(rows), dtype=torch.long, device=column.device)
        column[rows] = self.prepare(name, values).reshape(len(rows), *column.shape[1:])

    def read(self, name, rows):
        """Return a copy of the given rows of a column."""
        column = self.columns[name]
        rows = torch.as_tensor(np.asarray(rows), dtype=torch.long, device=column.device)
        return column[rows]

    def transfer(self, device):
        """Return a deep copy of every column on device."""
        return ColumnStore(OrderedDict((k, transfer(v, device)) for k, v in self.columns.items()))

    def empty_like(self, capacity: int, device=None):
        """Fresh store with the same columns, capacity rows each, at their default fill."""
        device = self.device if device is None else torch.device(device)
        return ColumnStore(OrderedDict(
            (k, torch.full((capacity, *v.shape[1:]), COLUMN_FILLS.get(k, 0), dtype=v.dtype, device=device))
            for k, v in self.columns.items()
        ))

    def permute(self, perm):
        """Reorder the first len(perm) rows of every column by the same permutation."""
        n = len(perm)
        for k, v in self.columns.items():
            rows = torch.as_tensor(np.asarray(perm), dtype=torch.long, device=v.device)
            v[:n] = v[rows]

import torch


class ContinuousSpace:
    """
    Describes a real-valued element: its shape and dtype.

    Parameters:
        dims (int or tuple): Element shape. An int is read as ``(dims,)``.
        dtype (torch.dtype): Element dtype.
    """
    def __init__(self, dims, dtype=torch.float32):
        self.dims = (dims,) if isinstance(dims, int) else tuple(dims)
        self.dtype = dtype

    def __repr__(self):
        return f"ContinuousSpace(dims={self.dims}, dtype={self.dtype})"


class DiscreteSpace:
    """A choice among n values, stored one-hot as a bool vector of length n."""
    def __init__(self, n: int):
        if n <= 0:
            raise ValueError(f"DiscreteSpace needs at least one value, got {n}")
        self.n = n
        self.dims = (n,)
        self.dtype = torch.bool

    def __repr__(self):
        return f"DiscreteSpace(n={self.n})"

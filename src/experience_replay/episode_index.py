"""
Episode segmentation over the valid rows of a buffer.

Episodes are recovered either from an ``episode_end`` flag column (an episode
ends on every flagged row) or from a ``t`` step-counter column (an episode
starts on every row with ``t == 1``). Both give inclusive, 0-based
``(start, end)`` row pairs.
"""

import numpy as np


def episodes(buffer):
    """
    Return the (start, end) row pairs of every episode stored in buffer.

    Raises:
        KeyError: If the buffer has neither an ``episode_end`` nor a ``t`` column.
    """
    if 'episode_end' in buffer:
        flags = buffer['episode_end'].reshape(len(buffer)).cpu().numpy()
        ep_ends = np.flatnonzero(flags)
        ep_starts = np.concatenate(([0], ep_ends[:-1] + 1)) if len(ep_ends) > 0 else ep_ends
    elif 't' in buffer:
        steps = buffer['t'].reshape(len(buffer)).cpu().numpy()
        ep_starts = np.flatnonzero(steps == 1)
        ep_ends = np.concatenate((ep_starts[1:] - 1, [len(buffer) - 1]))
    else:
        raise KeyError("Need 'episode_end' flag or 't' column to determine episodes")
    return [(int(start), int(end)) for start, end in zip(ep_starts, ep_ends)]


def find_episode(i, eps):
    """
    Return the episode of eps containing row i.

    Raises:
        IndexError: If i is not covered by any episode.
    """
    for ep in eps:
        if ep[0] <= i <= ep[1]:
            return ep
    if len(eps) == 0:
        raise IndexError(f"{i} out of range: no episodes stored")
    raise IndexError(f"{i} out of range of episodes [{eps[0][0]}, {eps[-1][1]}]")

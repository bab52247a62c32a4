"""
Sampling from experience buffers into a target buffer.

Every sampler draws rows from a source buffer and pushes them into a target
buffer, so a target of capacity B doubles as a minibatch.

- uniform_sample: rows drawn uniformly with replacement
- prioritized_sample: stratified draw proportional to priority, with
  importance sampling weights written to the source 'weight' column
- geometric_sample: episode-aware draw of a truncated geometric horizon
- sample: splits the target across several sources
"""

import numpy as np

from .episode_index import episodes, find_episode


def _check_not_empty(source):
    if len(source) == 0:
        raise ValueError("Cannot sample from empty buffer")


def uniform_sample(target, source, B=None):
    """Push B rows of source, drawn uniformly with replacement, into target."""
    B = target.capacity if B is None else B
    _check_not_empty(source)
    ids = source.numpy_rng.integers(0, len(source), size=B)
    return target.push(source, ids=ids)


def prioritized_sample(target, source, step=1, B=None):
    """
    Push B rows of source, drawn proportionally to their priority, into target.

    The total priority mass is split into B equal segments and one row is
    drawn from each, which reduces variance compared to B independent draws.
    Importance sampling weights ``(N * P(i)) ** -beta``, normalized by their
    maximum, are written to ``source['weight']`` before the copy, so they are
    at most 1 and equal to 1 for the least prioritized row.

    Parameters:
        target (ExperienceBuffer): Receives the rows. ``target.indices`` is set
            to the sampled source rows, needed to update their priorities later.
        source (ExperienceBuffer): Prioritized buffer with a 'weight' column.
        step (int): Training step passed to the source's beta schedule.
        B (int, optional): Number of rows. Defaults to the target capacity.

    Returns:
        np.ndarray: The sampled source rows.
    """
    B = target.capacity if B is None else B
    if 'weight' not in source:
        raise ValueError("Prioritized sampling needs a 'weight' column in the source buffer")
    if not source.prioritized:
        raise ValueError("Prioritized sampling needs a prioritized source buffer")
    _check_not_empty(source)

    N = len(source)
    ptot = source.priorities.prefix_sum(N)
    if ptot <= 0:
        raise ValueError("Cannot sample from empty buffer: total priority is zero")
    delta = ptot / B
    u = source.numpy_rng.random(B)
    positions = np.array([source.priorities.inverse_query((j + u[j]) * delta, N - 1) for j in range(B)],
                         dtype=np.int64)
    rows = positions - 1

    beta = source.beta(step)
    pmin = source.minsort_priorities.peek_min() / ptot
    max_w = (pmin * N) ** (-beta)
    probs = np.array([source.minsort_priorities.get(p) for p in positions]) / ptot
    weights = (probs * N) ** (-beta) / max_w
    source.data.write('weight', rows, weights)

    target.indices = rows
    target.push(source, ids=rows)
    return rows


def truncated_geometric(rng, p, upper):
    """
    Draw the number of failures before the first success of a Bernoulli(p)
    process, conditioned on being at most upper (element-wise).

    Uses the inverse of the truncated CDF ``1 - (1 - p) ** (k + 1)``.
    """
    upper = np.asarray(upper, dtype=np.int64)
    q = 1.0 - p
    u = rng.random(upper.shape)
    mass = 1.0 - q ** (upper + 1)
    k = np.ceil(np.log1p(-u * mass) / np.log(q)) - 1
    return np.clip(k, 0, upper).astype(np.int64)


def geometric_sample(target, source, gamma, B=None):
    """
    Push B rows of source into target, each a geometric horizon away from a
    uniformly drawn start row and never past the end of its episode.

    If the target has an 's0' column, it receives the first state of each
    sampled row's episode.

    Parameters:
        gamma (float): Discount in (0, 1); offsets follow Geometric(1 - gamma).
    """
    if not 0 < gamma < 1:
        raise ValueError(f"gamma must lie in (0, 1), got {gamma}")
    B = target.capacity if B is None else B
    _check_not_empty(source)

    starts = source.numpy_rng.integers(0, len(source), size=B)
    eps = episodes(source)
    eps = [find_episode(i, eps) for i in starts]
    remaining = np.array([ep[1] - i for ep, i in zip(eps, starts)], dtype=np.int64)
    ids = starts + truncated_geometric(source.numpy_rng, 1 - gamma, remaining)

    rows = target.push(source, ids=ids)
    if 's0' in target:
        s0_ids = np.array([ep[0] for ep in eps], dtype=np.int64)
        keep = slice(max(0, B - target.capacity), B)
        target.data.write('s0', rows[keep], source.data.read('s', s0_ids[keep]))
    return rows


def sample(target, *sources, step=1, fracs=None):
    """
    Fill target from one or more sources.

    The target capacity is split according to fracs (uniform by default),
    rounding down, with the remainder going to the first source. Fractions must
    be non-negative and sum to at most 1. Each source is sampled with
    prioritized_sample if it is prioritized, uniform_sample otherwise.
    """
    if len(sources) == 0:
        raise ValueError("Need at least one source buffer to sample from")
    if fracs is None:
        fracs = np.ones(len(sources)) / len(sources)
    fracs = np.asarray(fracs, dtype=np.float64)
    if len(fracs) != len(sources):
        raise ValueError(f"Got {len(fracs)} fractions for {len(sources)} sources")
    if np.any(fracs < 0) or (fracs.sum() > 1.0 and not np.isclose(fracs.sum(), 1.0)):
        raise ValueError(f"Fractions must be non-negative and sum to at most 1, got {fracs.tolist()}")
    batches = np.floor(target.capacity * fracs).astype(np.int64)
    batches[0] += target.capacity - batches.sum()

    for source, B in zip(sources, batches):
        if B == 0:
            continue
        if source.prioritized:
            prioritized_sample(target, source, step=step, B=int(B))
        else:
            uniform_sample(target, source, B=int(B))

"""
YAML configuration of replay buffers.

A configuration file holds a ``Replay_buffer`` section, for instance::

    Replay_buffer:
      capacity: 100000
      extras: [episode_end, s0]
      prioritized: true
      alpha: 0.6
      beta:
        start: 0.4
        frames: 100000
      max_priority: 1.0
      device: cpu
      seed: 0
"""
import os

import numpy as np
import torch
import yaml

from .replay_buffer import ExperienceBuffer
from .schedules import ConstantSchedule, LinearSchedule


SECTION = 'Replay_buffer'

DEFAULTS = {
    'extras': [],
    'prioritized': False,
    'alpha': 0.6,
    'beta': 0.5,
    'max_priority': 1.0,
    'device': 'cpu',
    'seed': None,
}


def load_buffer_config(file_path):
    """
    Load the replay buffer section of a YAML configuration file.

    Returns:
        dict: The section merged over DEFAULTS.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the section or its capacity is missing.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"The configuration file '{file_path}' does not exist.")
    with open(file_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}
    if SECTION not in config_data:
        raise ValueError(f"Configuration file '{file_path}' has no '{SECTION}' section")
    config = dict(DEFAULTS)
    config.update(config_data[SECTION] or {})
    if 'capacity' not in config:
        raise ValueError(f"'{SECTION}' section needs a 'capacity' entry")
    return config


def beta_schedule(value):
    """Build a beta schedule from a number or a {start, frames[, end]} mapping."""
    if isinstance(value, (int, float)):
        return ConstantSchedule(float(value))
    if isinstance(value, dict):
        try:
            return LinearSchedule(value['start'], value['frames'], value.get('end', 1.0))
        except KeyError as e:
            raise ValueError(f"Annealed beta needs 'start' and 'frames', missing {e}") from e
    raise ValueError(f"Unsupported beta configuration: {value!r}")


def buffer_from_config(config, state_space, action_space):
    """
    Build an ExperienceBuffer from a configuration dict (see load_buffer_config).
    """
    capacity = config['capacity']
    if not isinstance(capacity, int) or capacity <= 0:
        raise ValueError(f"capacity must be a positive integer, got {capacity!r}")
    seed = config.get('seed')
    return ExperienceBuffer(
        state_space, action_space, capacity,
        extras=config.get('extras') or [],
        device=torch.device(config.get('device', 'cpu')),
        prioritized=bool(config.get('prioritized', False)),
        alpha=float(config.get('alpha', 0.6)),
        beta=beta_schedule(config.get('beta', 0.5)),
        max_priority=float(config.get('max_priority', 1.0)),
        numpy_rng=np.random.default_rng(seed),
    )

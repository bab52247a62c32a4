# Priority structures
from .sum_tree import SumTree
from .min_priority import MinPriorityTracker

# Storage
from .spaces import ContinuousSpace, DiscreteSpace
from .columns import ColumnStore, ColumnSpec, column_specs, EXTRA_COLUMNS
from .allocator import CircularAllocator
from .episode_index import episodes, find_episode

# Buffer and samplers
from .schedules import BetaSchedule, ConstantSchedule, LinearSchedule
from .replay_buffer import ExperienceBuffer, buffer_like
from .sampling import sample, uniform_sample, prioritized_sample, geometric_sample

# Configuration and logging
from .config import load_buffer_config, buffer_from_config
from .logger import setup_logger, log_buffer_info

__all__ = [
    # Priority structures
    'SumTree', 'MinPriorityTracker',
    # Storage
    'ContinuousSpace', 'DiscreteSpace', 'ColumnStore', 'ColumnSpec', 'column_specs',
    'EXTRA_COLUMNS', 'CircularAllocator', 'episodes', 'find_episode',
    # Buffer and samplers
    'BetaSchedule', 'ConstantSchedule', 'LinearSchedule', 'ExperienceBuffer', 'buffer_like',
    'sample', 'uniform_sample', 'prioritized_sample', 'geometric_sample',
    # Configuration and logging
    'load_buffer_config', 'buffer_from_config', 'setup_logger', 'log_buffer_info',
]

"""Shared utilities and helpers."""
from shared.diagnostics import log_memory_usage, log_thread_status
from shared.portable import get_local_data_dir, is_portable_mode

__all__ = [
    'get_local_data_dir',
    'is_portable_mode',
    'log_memory_usage',
    'log_thread_status',
]

"""
End-to-end orchestration and run configuration.
"""

from .config import (
    DEFAULT_PROVIDER_BACKENDS,
    Credentials,
    PipelineConfig,
    load_config,
)
from .runner import PipelineResult, build_backends, run_pipeline, write_outputs

__all__ = [
    'DEFAULT_PROVIDER_BACKENDS',
    'Credentials',
    'PipelineConfig',
    'PipelineResult',
    'build_backends',
    'load_config',
    'run_pipeline',
    'write_outputs',
]

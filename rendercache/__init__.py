"""
rendercache - Content-addressed template compilation cache

Uploads release job sources once, memoizes each job's runtime packages,
and records rendered templates per deployment instance.
"""

__version__ = "0.1.0"


__all__ = [
    "RenderCacheConfig",
    "load_config",
    "get_rendercache_home",
    "TemplatesCompiler",
]

from .config import RenderCacheConfig, load_config, get_rendercache_home
from .templates_compiler import TemplatesCompiler

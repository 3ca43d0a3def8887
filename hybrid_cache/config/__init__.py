from .settings import CacheSettings, default_cache_dir

__all__ = ["CacheSettings", "default_cache_dir"]

"""
Common utilities for the connections loader.

Modules:
- config: environment-driven settings (optionally resolving secrets from SSM)
- errors: error kinds raised along the load/fallback path
- result: explicit Ok/Err values passed between load stages
"""

__all__ = [
    "config",
    "errors",
    "result",
]

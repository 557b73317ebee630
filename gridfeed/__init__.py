"""
Top-level public API surface. Stable facades only.
Canonical entrypoint: import gridfeed; use gridfeed.acquisition, gridfeed.core.
"""

from __future__ import annotations

from . import acquisition, config, core
from ._version import __version__

# Do not add exports without updating __all__.
__all__ = [
    "__version__",
    "acquisition",
    "config",
    "core",
]

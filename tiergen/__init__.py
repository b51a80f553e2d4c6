"""tiergen -- tiered Go service scaffolding generator.

Resolves a tier and feature selection into a configuration, renders the
matching template artifacts, writes them with a fingerprint manifest, and
migrates generated projects between tiers without overwriting user edits.
"""

from .config import TOOL_VERSION as __version__

__all__ = ["__version__"]

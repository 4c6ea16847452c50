"""Per-user hierarchical file storage core with a trash/purge lifecycle."""

from .config import DockvaultConfig  # noqa: F401
from .runtime import DockvaultRuntime  # noqa: F401

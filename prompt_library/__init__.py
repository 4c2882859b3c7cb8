"""
Prompt Library

A local, single-user manager for versioned prompts organised in folders.

This package includes:
- Versioned prompt records with per-chain history
- A folder hierarchy with a protected default folder
- Persistent JSON record storage with secondary indices
- Whole-dataset export and import
- Filtering, sorting and pagination for browsing
- An optional local JSON API built on aiohttp
"""

# =============================================================================
# Standard Library Imports
# =============================================================================

import logging

# =============================================================================
# Package Metadata
# =============================================================================

__version__ = "0.1.0"
__description__ = "Local manager for versioned prompts organised in folders"

# =============================================================================
# Local/Project Imports
# =============================================================================

from .core import (
    Library,
    LibraryState,
    PromptContent,
    PromptVersion,
    Folder,
    PromptQuery,
    SortOption,
    RecordStore,
    create_store,
    LibraryError,
)

# =============================================================================
# Module-Level Variables
# =============================================================================

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = [
    "Library",
    "LibraryState",
    "PromptContent",
    "PromptVersion",
    "Folder",
    "PromptQuery",
    "SortOption",
    "RecordStore",
    "create_store",
    "LibraryError",
]

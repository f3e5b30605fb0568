"""
congregation_backup - Snapshot backup and restore for congregation data.

Exports every entity collection of the congregation store into a single
versioned snapshot document and restores the store from such a document.
"""

__version__ = "0.1.0"

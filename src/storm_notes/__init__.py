"""
Storm Notes - a tag-first personal note collection.
Notes are organized purely through free-form tags. The package ranks tags for
the tag bar, assigns each tag a readable color, and partitions notes into
direct and related matches for a tag selection.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("storm-notes")
except PackageNotFoundError:
    __version__ = "0.3.0"

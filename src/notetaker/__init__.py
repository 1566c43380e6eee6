"""
Notetaker - the notes data-management core behind the Notetaker app.

This package keeps notes, their tags and the references between them
consistent, and answers tag-filtered full-text searches. It is exposed both
as a Python API and as an MCP tool server.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notetaker-core")
except PackageNotFoundError:
    __version__ = "0.3.0"

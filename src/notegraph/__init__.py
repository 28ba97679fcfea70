"""
notegraph - the core of a personal knowledge-management backend.

Notes live in a tree of groups, carry global or group-scoped tags and are
connected by typed, weighted, directed links that form a knowledge graph.
This package holds the persistence layer and the services for group
hierarchies, tag scoping, link graph analytics and filtered graph views.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notegraph")
except PackageNotFoundError:
    __version__ = "0.3.0"

"""
Routes URLs to the collection that should download them.
"""

from collections.abc import Sequence

from dlm.models.config import Collection


def resolve_collection(
    collections: Sequence[Collection], url: str
) -> Collection | None:
    """
    Returns the first collection with a domain contained in the URL.

    Collections are tried in configuration order and each collection's domains
    in their listed order. Matching is plain substring containment, so a
    narrower domain must be configured before a broader one that shares its
    suffix.
    """
    for collection in collections:
        for domain in collection.domains:
            if domain in url:
                return collection
    return None


def find_collection(collections: Sequence[Collection], name: str) -> Collection | None:
    """Looks up a collection by name."""
    for collection in collections:
        if collection.name == name:
            return collection
    return None

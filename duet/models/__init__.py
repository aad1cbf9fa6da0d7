"""
Duet — ORM model registry.

Importing every model here ensures that ``Base.metadata`` (and any tool that
inspects it) discovers all tables automatically.
"""

from duet.models.document import StoredDocument

__all__ = [
    "StoredDocument",
]

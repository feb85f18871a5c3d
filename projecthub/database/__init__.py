from projecthub.database.core.document import StoredDocument, coerce_id, matches_filter
from projecthub.database.core.exceptions import DocumentNotFoundError, DocumentValidationError, DuplicateInsertError
from projecthub.database.backends.entity_store import EntityStore
from projecthub.database.backends.memory_store import InMemoryEntityStore
from projecthub.database.backends.mongo_store import MongoEntityStore

__all__ = [
    "coerce_id",
    "DocumentNotFoundError",
    "DocumentValidationError",
    "DuplicateInsertError",
    "EntityStore",
    "InMemoryEntityStore",
    "matches_filter",
    "MongoEntityStore",
    "StoredDocument",
]

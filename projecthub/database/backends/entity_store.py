from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from projecthub.core import ProjectHub, ProjectHubMeta
from projecthub.database.core.document import StoredDocument

T = TypeVar("T", bound=StoredDocument)


class _EntityStoreMeta(ProjectHubMeta, type(ABC)):
    pass


class EntityStore(ProjectHub, ABC, Generic[T], metaclass=_EntityStoreMeta):
    """
    Abstract document store bound to a single model class (one collection).

    Every write primitive is single-document. There is no cross-document atomicity: callers that must keep references
    between documents consistent compose these primitives, relying on ``add_unique`` and ``pull`` being idempotent.

    Args:
        model_cls (Type[T]): The document model stored in this collection.

    Example:
        .. code-block:: python

            store = InMemoryEntityStore(User)
            user = await store.create(User(email="ada@example.com", ...))
            await store.add_unique(user.id, "projects", project.id)
    """

    def __init__(self, model_cls: Type[T], **kwargs):
        super().__init__(**kwargs)
        self.model_cls: Type[T] = model_cls

    @abstractmethod
    async def initialize(self):
        """Prepare the underlying collection (indexes, connections)."""

    @abstractmethod
    async def create(self, doc: T) -> T:
        """Insert a new document and return it with its store-assigned id.

        Raises:
            DuplicateInsertError: If the document violates a unique index.
            DocumentValidationError: If the document fails its model's schema.
        """

    @abstractmethod
    async def find_by_id(self, id: Any, fields: Optional[Iterable[str]] = None) -> Optional[T]:
        """Return the document with the given id, or None. ``fields`` limits the loaded fields."""

    @abstractmethod
    async def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        """Return the first document matching an equality filter, or None."""

    @abstractmethod
    async def find(self, query: Dict[str, Any]) -> List[T]:
        """Return every document matching an equality filter."""

    @abstractmethod
    async def update(
        self, id: Any, patch: Dict[str, Any], *, return_updated: bool = True, run_validation: bool = True
    ) -> Optional[T]:
        """Set the fields in ``patch`` on the document.

        Returns the document after the update when ``return_updated`` is True, otherwise before it. Returns None if no
        document has the id.

        Raises:
            DuplicateInsertError: If the update violates a unique index.
            DocumentValidationError: If ``run_validation`` is set and the result fails the model's schema.
        """

    @abstractmethod
    async def delete(self, id: Any) -> Optional[T]:
        """Delete the document and return it, or None if it did not exist."""

    @abstractmethod
    async def add_unique(self, id: Any, field: str, value: Any) -> bool:
        """Append ``value`` to the list ``field`` unless already present. Returns False if the document is missing."""

    @abstractmethod
    async def push(self, id: Any, field: str, value: Any) -> bool:
        """Append ``value`` to the list ``field``. Returns False if the document is missing."""

    @abstractmethod
    async def pull(self, id: Any, field: str, value: Any) -> bool:
        """Remove every occurrence of ``value`` from the list ``field``. Returns False if the document is missing."""

    @abstractmethod
    async def pull_all(self, query: Dict[str, Any], field: str, value: Any) -> int:
        """Remove ``value`` from ``field`` on every document matching ``query``. Returns the number matched."""

    async def exists(self, query: Dict[str, Any]) -> bool:
        return await self.find_one(query) is not None

    async def find_many(self, ids: Iterable[Any]) -> List[T]:
        """Load documents by id, preserving order and skipping ids that no longer resolve."""
        found = []
        for id in ids:
            doc = await self.find_by_id(id)
            if doc is not None:
                found.append(doc)
        return found

"""In-memory, process-lifetime stores keyed by record id.

Both the device registry and the playbook store follow the same upsert rule:
an incoming body whose id is already known is merged field-by-field into the
existing record, anything else is appended as a new record. Records are kept
in insertion order.
"""

from typing import Generic, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class InMemoryStore(Generic[T]):
    """Ordered list of pydantic records with merge-on-upsert semantics."""

    model: Type[T]

    def __init__(self, items: Optional[Iterable[T]] = None) -> None:
        self._items: List[T] = list(items or [])

    def all(self) -> List[T]:
        return list(self._items)

    def get(self, item_id: str) -> Optional[T]:
        return next((item for item in self._items if item.id == item_id), None)

    def upsert(self, patches: Iterable[BaseModel]) -> List[T]:
        """Applies a batch of partial bodies and returns the full record list.

        The batch is validated as a whole before it is committed, so a body
        that fails validation leaves the store untouched.

        Raises:
            pydantic.ValidationError: If a new record lacks required fields or a
                                      merge produces an invalid record.
        """
        items = list(self._items)
        for patch in patches:
            fields = patch.model_dump(exclude_unset=True)
            index = next((i for i, item in enumerate(items) if item.id == patch.id), None)
            if index is None:
                items.append(self.model.model_validate(fields))
            else:
                merged = {**items[index].model_dump(), **fields}
                items[index] = self.model.model_validate(merged)
        self._items = items
        return self.all()

    def replace(self, item: T) -> None:
        for index, existing in enumerate(self._items):
            if existing.id == item.id:
                self._items[index] = item
                return
        self._items.append(item)

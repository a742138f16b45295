# parkflow/repository.py
"""
Typed repository over one SQLAlchemy model.
Managers get their rows through this so business code only ever handles
mapped entities, never raw rows.
"""

from typing import Generic, Optional, Type, TypeVar
from sqlalchemy.orm import Session
from parkflow.errors import NotFound

ModelT = TypeVar("ModelT")


class Repository(Generic[ModelT]):
    def __init__(self, db: Session, model: Type[ModelT]):
        self.db = db
        self.model = model

    def get(self, entity_id) -> Optional[ModelT]:
        return self.db.get(self.model, entity_id)

    def get_or_404(self, entity_id) -> ModelT:
        entity = self.get(entity_id)
        if entity is None:
            raise NotFound(f"{self.model.__name__} {entity_id} not found")
        return entity

    def get_for_update(self, entity_id) -> ModelT:
        """Load the row holding a write lock until the transaction ends."""
        entity = (
            self.db.query(self.model)
            .filter(self.model.id == entity_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if entity is None:
            raise NotFound(f"{self.model.__name__} {entity_id} not found")
        return entity

    def query(self):
        return self.db.query(self.model)

    def add(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        self.db.flush()
        return entity

    def update_where(self, entity_id, expected: dict, values: dict) -> int:
        """
        Conditional update: writes `values` only if every column in `expected`
        still holds the expected value (a tuple means "any of").
        Returns the number of rows changed, 0 when the condition failed.
        """
        criteria = [self.model.id == entity_id]
        for column, value in expected.items():
            attr = getattr(self.model, column)
            if isinstance(value, (tuple, list, set, frozenset)):
                criteria.append(attr.in_(list(value)))
            else:
                criteria.append(attr == value)
        return (
            self.db.query(self.model)
            .filter(*criteria)
            .update(values, synchronize_session="fetch")
        )

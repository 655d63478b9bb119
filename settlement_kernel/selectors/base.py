"""
Module: settlement_kernel.selectors.base
Responsibility: Base class for read-only selectors.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Selectors never add, delete, flush or commit.  The caller owns the
      session and its transaction scope.
    - Selectors return frozen dataclasses or plain values, not ORM rows,
      unless the method name says otherwise (``get_*_model``).
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

"""
BaseStore -- abstract base for the movement and projection stores.

Responsibility:
    Provides the common constructor and session-handling contract for the
    stores that write ledger tables.  Stores use ``session.flush()`` and
    never ``session.commit()``; the caller's ``unit_of_work()`` owns the
    transaction.

Architecture position:
    Kernel > Stores -- the persistence seam between services and the ORM.
    The Ledger Writer, projection service and reconciliation routines talk
    to storage only through stores and selectors.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseStore(ABC):
    """
    Abstract base class for stores.

    Guarantees:
        - The store never calls ``session.commit()`` or ``session.rollback()``;
          savepoints it opens are its own and are always resolved before
          returning.
    """

    def __init__(self, session: Session):
        self.session = session

"""
Read-side base class.

Selectors answer questions about reference data (locations, orders) for
the writer and the reconciliation routines.  They run inside the caller's
transaction and never add, delete, flush or commit.
"""

from sqlalchemy.orm import Session


class BaseSelector:
    """Holds the caller's session; subclasses only issue SELECTs."""

    def __init__(self, session: Session):
        self.session = session

"""
BaseService -- abstract base for write-side kernel services.

Services receive a SQLAlchemy ``Session`` and persist with
``session.flush()`` inside the caller's transaction.  They never commit
or roll back the outer transaction; the caller (``session_scope()`` or a
test harness) owns that.  Per-operation atomicity is achieved with
SAVEPOINTs (``session.begin_nested()``).
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for write-side services.

    Guarantees:
        - The service never calls ``session.commit()`` on the outer
          transaction.
    """

    def __init__(self, session: Session):
        self.session = session

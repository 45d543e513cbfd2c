"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for read-only selectors.
Architecture position: Kernel > Selectors.  Selectors NEVER create, modify,
    flush or delete data.  They take a Session from the caller and return
    frozen DTOs, never ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Guarantees:
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session):
        self.session = session

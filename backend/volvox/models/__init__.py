"""ORM models. Importing this registers every table on Base.metadata."""
from volvox.models.document import Base, Document

__all__ = ["Base", "Document"]

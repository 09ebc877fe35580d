"""
Persistence layer shared by the ingestion process and the read API.

Modules:
    base: Per-operation sessions and dialect-aware ON CONFLICT inserts
    batch_store: Batch lifecycle records (owned by the ingestion engine)
    point_store: Forecast observations, range queries and aggregation

The read API only uses the read operations of both stores; all writes
come from the ingestion engine.
"""

__all__ = [
    "BaseStore",
    "BatchStore",
    "PointStore",
    "InsertResult",
    "TOLERANCE",
]

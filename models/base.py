from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on other backends
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class BatchStatus(str, enum.Enum):
    """Batch lifecycle status"""
    RUNNING = "RUNNING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"

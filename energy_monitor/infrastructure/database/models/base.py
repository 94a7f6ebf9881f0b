"""
Declarative base for the energy tables.
"""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import BigInteger, DateTime, MetaData
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# Unix milliseconds; interval ends and measurement times use this
UnixMillis = BigInteger

metadata = MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
})


class Base(DeclarativeBase):
    """Timestamps are timezone aware and dict columns are JSONB."""

    metadata = metadata
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        Dict[str, Any]: JSONB,
    }

"""Core mapping - record field to board column mapping.

The mapping values are stored in configuration (JSON) and are specific to
the target boards; this package only interprets them.
"""

from core.mapping.engine import (
    ColumnMapping,
    ColumnMappingTable,
)

__all__ = [
    "ColumnMapping",
    "ColumnMappingTable",
]

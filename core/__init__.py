"""Core module - board-neutral sync models, mapping, config and observability.

This module contains the canonical data models, the error taxonomy, column
and board mapping, configuration and observability. It is intentionally
independent of any board service.

Service-specific logic (Monday.com, etc.) belongs in /connectors/.
"""

__version__ = "1.0.0"

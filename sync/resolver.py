"""Board mapping resolver.

Resolves an external project id to the board that holds its WBS rows,
either from a mapping board or from the static table in the config.
"""

from typing import List

from connectors.board_base import BoardClient, FilterRule
from core.errors import AmbiguousMappingError, MappingNotFoundError
from core.models import BoardItem, BoardMapping
from core.observability.logging import get_logger
from sync.calls import guarded_call
from sync.config import SyncConfig

logger = get_logger(__name__)


class BoardMappingResolver:
    """Resolve ``project_id -> BoardMapping``.

    Matching is exact and case-sensitive. The mapping board is searched
    through the client, whose own matching may be looser, so every returned
    row is re-checked here. More than one matching row is an error; a
    matching row with an empty board column counts as not configured.
    """

    def __init__(self, client: BoardClient, config: SyncConfig):
        self.client = client
        self.config = config

    async def resolve(self, project_id: str) -> BoardMapping:
        """Return the target board for ``project_id``.

        Raises:
            MappingNotFoundError: No mapping (recoverable, skip the record)
            AmbiguousMappingError: Several mapping rows match
            TransportError / QueryRejectedError: Lookup failed
        """
        if not self.config.uses_mapping_board:
            return self._resolve_static(project_id)
        return await self._resolve_from_board(project_id)

    def _resolve_static(self, project_id: str) -> BoardMapping:
        board_id = self.config.board_mappings.get(project_id)
        if not board_id:
            raise MappingNotFoundError(project_id)
        return BoardMapping(project_id=project_id, board_id=board_id)

    async def _resolve_from_board(self, project_id: str) -> BoardMapping:
        key_column = self.config.mapping_key_column
        target_column = self.config.mapping_target_column

        rows: List[BoardItem] = await guarded_call(
            self.client.query_items(
                self.config.mapping_board_id,
                [FilterRule.equals(key_column, project_id)],
            ),
            "query_mapping_board",
            self.config.call_timeout_seconds,
        )
        matches = [row for row in rows if row.text(key_column) == project_id]

        if not matches:
            raise MappingNotFoundError(project_id)
        if len(matches) > 1:
            raise AmbiguousMappingError(
                project_id,
                [row.text(target_column) or f"item:{row.id}" for row in matches],
            )

        row = matches[0]
        board_id = row.text(target_column)
        if not board_id:
            logger.warning(
                f"Mapping row {row.id} for project {project_id} has no board id",
                extra_fields={"mapping_item_id": row.id},
            )
            raise MappingNotFoundError(project_id)

        return BoardMapping(project_id=project_id, board_id=board_id, source_item_id=row.id)

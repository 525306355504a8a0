import logging

from taskboard.core import config, ordering
from taskboard.core.errors import ConflictRetry, NotFound, ValidationFailed
from taskboard.core.locks import registry, board_key, channel_key, column_key
from taskboard.core.store import BoardStore
from taskboard.db.models import Board, TaskColumn
from taskboard.db.session import async_session

logger = logging.getLogger(__name__)


def require_text(field: str, value) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed(field, "must not be blank")
    return str(value).strip()


class BoardService:
    """Board lifecycle and column ordering within a board."""

    def __init__(
        self,
        session_factory=async_session,
        locks=registry,
        max_retries: int = config.CONFLICT_MAX_RETRIES,
        compact_on_delete: bool = config.COMPACT_ON_DELETE,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.max_retries = max_retries
        self.compact_on_delete = compact_on_delete

    async def get_or_create_board(self, channel_id: str) -> Board:
        """Return the board bound to ``channel_id``, creating an empty one if needed."""
        channel_id = require_text("channel_id", channel_id)

        async def work():
            for attempt in range(1, self.max_retries + 1):
                async with self.session_factory() as db:
                    store = BoardStore(db)
                    board = await store.find_board_by_channel(channel_id)
                    if board:
                        return board
                    try:
                        await store.add_board(channel_id)
                        await store.commit()
                    except ConflictRetry:
                        # Another process won the unique binding; re-fetch theirs
                        logger.warning(
                            f"Board creation for channel {channel_id} raced (attempt {attempt}/{self.max_retries})"
                        )
                        continue
                    logger.info(f"Created board for channel {channel_id}")
                    return await store.find_board_by_channel(channel_id)
            raise ConflictRetry(f"could not settle board for channel {channel_id}")

        return await self.locks.serialized([channel_key(channel_id)], work)

    async def _require_board(self, channel_id: str) -> Board:
        async with self.session_factory() as db:
            board = await BoardStore(db).find_board_by_channel(channel_id)
        if not board:
            raise NotFound("Board", channel_id)
        return board

    async def create_column(self, channel_id: str, title: str) -> TaskColumn:
        title = require_text("title", title)
        board = await self._require_board(channel_id)

        async def work():
            async with self.session_factory() as db:
                store = BoardStore(db)
                columns = await store.list_columns(board.id)
                position = ordering.append(columns)
                column = await store.add_column(board.id, title, position)
                column = await store.get_column(column.id)
                await store.commit()
                return column

        column = await self.locks.serialized([board_key(board.id)], work)
        logger.info(f"Created column {column.id} '{title}' at position {column.position} on board {board.id}")
        return column

    async def get_columns(self, channel_id: str) -> list[TaskColumn]:
        board = await self._require_board(channel_id)
        async with self.session_factory() as db:
            return await BoardStore(db).list_columns(board.id)

    async def delete_column(self, column_id: int) -> None:
        """Delete a column together with its tasks and their assignments."""
        async with self.session_factory() as db:
            column = await BoardStore(db).get_column(column_id)
        if not column:
            raise NotFound("Column", column_id)
        board_id = column.board_id

        async def work():
            async with self.session_factory() as db:
                store = BoardStore(db)
                if not await store.get_column(column_id):
                    raise NotFound("Column", column_id)
                await store.delete_column(column_id)
                if self.compact_on_delete:
                    remaining = await store.list_columns(board_id)
                    ordering.apply(remaining, [c.id for c in remaining])
                await store.commit()

        await self.locks.serialized([board_key(board_id), column_key(column_id)], work)
        logger.info(f"Deleted column {column_id} from board {board_id}")

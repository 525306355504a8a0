import logging
from typing import List

from fastapi import APIRouter, Depends, status

from taskboard.api.deps import get_board_service
from taskboard.core.board_service import BoardService
from taskboard.schemas.board import BoardRead, ColumnCreate, ColumnRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["boards"])


@router.get("/boards/channel/{channel_id}", response_model=BoardRead)
async def get_board(
    channel_id: str,
    service: BoardService = Depends(get_board_service),
):
    """Fetch the channel's board, creating an empty one on first access."""
    return await service.get_or_create_board(channel_id)


@router.post(
    "/boards/channel/{channel_id}/columns",
    response_model=ColumnRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_column(
    channel_id: str,
    column: ColumnCreate,
    service: BoardService = Depends(get_board_service),
):
    """Append a column to the end of the board."""
    return await service.create_column(channel_id, column.title)


@router.get("/boards/channel/{channel_id}/columns", response_model=List[ColumnRead])
async def list_columns(
    channel_id: str,
    service: BoardService = Depends(get_board_service),
):
    return await service.get_columns(channel_id)


@router.delete("/columns/{column_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_column(
    column_id: int,
    service: BoardService = Depends(get_board_service),
):
    """Delete a column along with its tasks."""
    await service.delete_column(column_id)

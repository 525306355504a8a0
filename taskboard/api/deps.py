from fastapi import HTTPException, Request

from taskboard.core.board_service import BoardService
from taskboard.core.notifications import NotificationDispatcher, NotificationInbox
from taskboard.core.task_service import TaskService


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return NotificationDispatcher(getattr(request.app.state, "redis", None))


def get_inbox(request: Request) -> NotificationInbox:
    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        raise HTTPException(status_code=503, detail="Notifications unavailable")
    return NotificationInbox(redis)


def get_board_service() -> BoardService:
    return BoardService()


def get_task_service(request: Request) -> TaskService:
    return TaskService(dispatcher=get_dispatcher(request))

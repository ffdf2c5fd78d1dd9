from fastapi import BackgroundTasks, Request

from ..database import async_session
from ..workers.completion_worker import CompletionEventPublisher, InlineCompletionPublisher


def get_completion_publisher(request: Request, background_tasks: BackgroundTasks) -> CompletionEventPublisher:
    """Return the running completion worker, or an inline publisher when it is disabled"""

    worker = getattr(request.app.state, "completion_worker", None)
    if worker is not None and worker.running:
        return worker
    return InlineCompletionPublisher(async_session, background_tasks.add_task)

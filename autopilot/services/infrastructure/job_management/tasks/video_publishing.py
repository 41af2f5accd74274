from typing import Any, Dict

from autopilot.services.collaborators import HttpCollaborator

from ..base import JobContext, JobHandler
from ..decorators import job
from ..queues import JobTypes, QueueName


@job(QueueName.PUBLISHING, JobTypes.PUBLISH_VIDEO, name="Video Publisher")
class PublishVideoHandler(JobHandler):
    """Uploads a rendered tutorial to the video platform."""

    required_fields = ["video_path"]

    def __init__(self, publisher: HttpCollaborator):
        self.publisher = publisher

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        await context.report_progress(10)
        published = await self.publisher.invoke(context.payload)
        await context.report_progress(100)
        return {
            "video_id": published.get("video_id"),
            "url": published.get("url"),
            "workflow_id": context.payload.get("workflow_id"),
        }

from typing import Any, Dict

from autopilot.lib.logger import configure_logger
from autopilot.services.collaborators import HttpCollaborator

from ..base import JobContext, JobHandler
from ..decorators import job
from ..queues import JobTypes, QueueName

logger = configure_logger(__name__)


@job(
    QueueName.CONTENT_CREATION,
    JobTypes.CREATE_CONTENT,
    name="Content Creator",
    description="Builds the tutorial script, narration and video for a workflow",
)
class CreateContentHandler(JobHandler):
    required_fields = ["workflow_id"]

    def __init__(self, content_creator: HttpCollaborator):
        self.content_creator = content_creator

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        await context.report_progress(5)
        content = await self.content_creator.invoke(context.payload)
        await context.report_progress(80)

        publish_job_id = None
        if context.payload.get("auto_publish") and content.get("video_path"):
            publish_job_id = await context.enqueue(
                QueueName.PUBLISHING,
                JobTypes.PUBLISH_VIDEO,
                {
                    "workflow_id": context.payload["workflow_id"],
                    "video_path": content["video_path"],
                    "title": content.get("title"),
                    "description": content.get("description"),
                    "source_job_id": context.job_id,
                },
            )
            logger.info(
                "Queued video publishing",
                extra={"job_id": context.job_id, "publish_job_id": publish_job_id},
            )

        await context.report_progress(100)
        return {"content": content, "publish_job_id": publish_job_id}

from typing import Any, Dict

from autopilot.services.collaborators import HttpCollaborator

from ..base import JobContext, JobHandler
from ..decorators import job
from ..queues import JobTypes, QueueName


@job(QueueName.ANALYTICS, JobTypes.TRACK_EVENT, name="Event Tracker")
class TrackEventHandler(JobHandler):
    required_fields = ["event"]

    def __init__(self, analytics: HttpCollaborator):
        self.analytics = analytics

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        await self.analytics.invoke(context.payload)
        return {"tracked": context.payload["event"]}

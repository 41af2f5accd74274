from typing import Any, Dict

from autopilot.lib.logger import configure_logger
from autopilot.services.collaborators import HttpCollaborator

from ..base import JobContext, JobHandler
from ..decorators import job
from ..queues import JobTypes, QueueName

logger = configure_logger(__name__)


@job(QueueName.NOTIFICATIONS, JobTypes.SEND_EMAIL, name="Email Sender")
class SendEmailHandler(JobHandler):
    required_fields = ["to", "template"]

    def __init__(self, mailer: HttpCollaborator):
        self.mailer = mailer

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        sent = await self.mailer.invoke(context.payload)
        return {"message_id": sent.get("message_id"), "to": context.payload["to"]}


@job(
    QueueName.NOTIFICATIONS,
    JobTypes.SEND_SCHEDULED_EMAIL,
    name="Scheduled Email Sender",
    description="Sends one step of an email automation sequence",
)
class SendScheduledEmailHandler(JobHandler):
    """The mailer evaluates the step condition and may skip the send."""

    required_fields = ["template", "rule_name"]

    def __init__(self, mailer: HttpCollaborator):
        self.mailer = mailer

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        answer = await self.mailer.invoke({**context.payload, "scheduled": True})
        skipped = bool(answer.get("skipped", False))
        if skipped:
            logger.info(
                "Email condition not met, skipped",
                extra={
                    "job_id": context.job_id,
                    "condition": context.payload.get("condition"),
                    "template": context.payload["template"],
                },
            )
        return {
            "template": context.payload["template"],
            "rule_name": context.payload["rule_name"],
            "skipped": skipped,
            "message_id": answer.get("message_id"),
        }

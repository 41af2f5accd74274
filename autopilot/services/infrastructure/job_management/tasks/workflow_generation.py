from typing import Any, Dict

from autopilot.lib.logger import configure_logger
from autopilot.services.collaborators import HttpCollaborator

from ..backoff import FixedBackoff
from ..base import JobContext, JobHandler
from ..decorators import job
from ..dispatcher import JobOptions
from ..queues import JobTypes, QueueName

logger = configure_logger(__name__)

# Testing of a freshly generated workflow: two attempts, 10s apart
TEST_JOB_ATTEMPTS = 2
TEST_JOB_BACKOFF_MS = 10_000


@job(
    QueueName.GENERATION,
    JobTypes.GENERATE_WORKFLOW,
    name="Workflow Generator",
    description="Generates an automation workflow from a customer request",
)
class GenerateWorkflowHandler(JobHandler):
    """Calls the generator, then queues a test run of the generated workflow."""

    required_fields = ["customerRequest"]

    def __init__(self, generator: HttpCollaborator):
        self.generator = generator

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        payload = context.payload
        await context.report_progress(10)

        generated = await self.generator.invoke(payload)
        await context.report_progress(70)

        workflow = generated.get("workflow", generated)
        test_job_id = None
        options = payload.get("options") or {}
        if options.get("include_testing", True):
            test_job_id = await context.enqueue(
                QueueName.TESTING,
                JobTypes.TEST_WORKFLOW,
                {
                    "workflow_id": generated.get("workflow_id"),
                    "workflow_json": workflow,
                    "test_data": {},
                    "requestId": payload.get("requestId"),
                    "source_job_id": context.job_id,
                },
                JobOptions(
                    attempts=TEST_JOB_ATTEMPTS,
                    backoff=FixedBackoff(TEST_JOB_BACKOFF_MS),
                ),
            )
            logger.info(
                "Queued test run for generated workflow",
                extra={"job_id": context.job_id, "test_job_id": test_job_id},
            )

        await context.report_progress(100)
        return {
            "workflow_id": generated.get("workflow_id"),
            "workflow": workflow,
            "test_job_id": test_job_id,
        }

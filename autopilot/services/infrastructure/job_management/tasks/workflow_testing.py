from typing import Any, Dict

from autopilot.services.collaborators import HttpCollaborator

from ..base import JobContext, JobHandler
from ..decorators import job
from ..queues import JobTypes, QueueName


@job(QueueName.TESTING, JobTypes.TEST_WORKFLOW, name="Workflow Tester")
class TestWorkflowHandler(JobHandler):
    """Runs a generated workflow against sample data."""

    __test__ = False

    required_fields = ["workflow_json"]

    def __init__(self, tester: HttpCollaborator):
        self.tester = tester

    async def handle(self, context: JobContext) -> Dict[str, Any]:
        await context.report_progress(10)
        outcome = await self.tester.invoke(context.payload)
        await context.report_progress(100)
        return {
            "workflow_id": context.payload.get("workflow_id"),
            "passed": bool(outcome.get("passed", outcome.get("success", False))),
            "report": outcome,
        }

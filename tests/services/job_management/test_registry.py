"""Tests for handler declaration and the handler registry."""

import pytest

from autopilot.backend.models import Job
from autopilot.services.infrastructure.job_management.base import (
    ConfigurationError,
    JobContext,
    JobHandler,
)
from autopilot.services.infrastructure.job_management.decorators import (
    HandlerRegistry,
    job,
)
from autopilot.services.infrastructure.job_management.queues import (
    JobTypes,
    QueueName,
)
from autopilot.services.infrastructure.job_management.tasks import (
    GenerateWorkflowHandler,
    TrackEventHandler,
)


class TestJobDecorator:
    def test_metadata_attached(self):
        metadata = GenerateWorkflowHandler.job_metadata
        assert metadata.queue == QueueName.GENERATION
        assert metadata.job_type == JobTypes.GENERATE_WORKFLOW
        assert metadata.name == "Workflow Generator"

    def test_declaring_does_not_register(self):
        assert TrackEventHandler.job_metadata.queue == QueueName.ANALYTICS
        assert HandlerRegistry().list_jobs() == {}

    def test_undeclared_job_type_rejected(self):
        with pytest.raises(ConfigurationError):

            @job(QueueName.ANALYTICS, "send-fax")
            class FaxHandler(JobHandler):
                async def handle(self, context):
                    return {}


class TestHandlerRegistry:
    def test_register_and_require(self, recording_handler):
        registry = HandlerRegistry()
        handler = recording_handler()

        registry.register(QueueName.ANALYTICS, JobTypes.TRACK_EVENT, handler)

        assert registry.require("analytics", JobTypes.TRACK_EVENT) is handler
        assert registry.get(QueueName.ANALYTICS, "other") is None

    def test_duplicate_rejected(self, recording_handler):
        registry = HandlerRegistry()
        registry.register(QueueName.ANALYTICS, JobTypes.TRACK_EVENT, recording_handler())

        with pytest.raises(ConfigurationError):
            registry.register(
                QueueName.ANALYTICS, JobTypes.TRACK_EVENT, recording_handler()
            )

    def test_wrong_queue_rejected(self, recording_handler):
        with pytest.raises(ConfigurationError):
            HandlerRegistry().register(
                QueueName.PUBLISHING, JobTypes.TRACK_EVENT, recording_handler()
            )

    def test_unknown_queue_rejected(self, recording_handler):
        with pytest.raises(ConfigurationError):
            HandlerRegistry().register("fax", JobTypes.TRACK_EVENT, recording_handler())

    def test_validate_lists_every_gap(self, recording_handler):
        registry = HandlerRegistry()
        registry.register(QueueName.ANALYTICS, JobTypes.TRACK_EVENT, recording_handler())

        issues = registry.validate()

        assert len(issues) == 6
        assert any("video-publishing/publish-video" in issue for issue in issues)
        with pytest.raises(ConfigurationError):
            registry.ensure_complete()

    def test_complete_registry(self, full_registry):
        registry = full_registry()
        assert registry.validate() == []
        registry.ensure_complete()
        assert len(registry.list_jobs()) == 7

    def test_register_class_requires_decorator(self, recording_handler):
        with pytest.raises(ConfigurationError):
            HandlerRegistry().register_class(recording_handler)

    def test_register_class_instantiates(self):
        registry = HandlerRegistry()
        collaborator = object()

        handler = registry.register_class(TrackEventHandler, collaborator)

        assert handler.analytics is collaborator
        assert registry.require(QueueName.ANALYTICS, JobTypes.TRACK_EVENT) is handler
        metadata = registry.list_jobs()[(QueueName.ANALYTICS, JobTypes.TRACK_EVENT)]
        assert metadata.name == "Event Tracker"


class TestJobHandlerValidation:
    @pytest.mark.asyncio
    async def test_missing_fields_raise(self, recording_handler):
        class NeedsEvent(recording_handler):
            required_fields = ["event"]

        context = JobContext(
            job=Job(id="j", queue_name="analytics", type="track-event", created_at=0),
            report_progress=None,
            enqueue=None,
        )
        with pytest.raises(ValueError, match="event"):
            await NeedsEvent().execute(context)

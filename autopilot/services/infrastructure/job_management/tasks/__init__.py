"""Built-in pipeline handlers.

Importing this package declares every handler with ``@job``;
``register_default_handlers`` binds them to their collaborators.
"""

from typing import TYPE_CHECKING

from ..decorators import HandlerRegistry
from .analytics import TrackEventHandler
from .content_creation import CreateContentHandler
from .email_notifications import SendEmailHandler, SendScheduledEmailHandler
from .video_publishing import PublishVideoHandler
from .workflow_generation import GenerateWorkflowHandler
from .workflow_testing import TestWorkflowHandler

if TYPE_CHECKING:
    from autopilot.services.collaborators import Collaborators

__all__ = [
    "GenerateWorkflowHandler",
    "TestWorkflowHandler",
    "CreateContentHandler",
    "PublishVideoHandler",
    "SendEmailHandler",
    "SendScheduledEmailHandler",
    "TrackEventHandler",
    "register_default_handlers",
]


def register_default_handlers(
    registry: HandlerRegistry, collaborators: "Collaborators"
) -> HandlerRegistry:
    registry.register_class(GenerateWorkflowHandler, collaborators.generator)
    registry.register_class(TestWorkflowHandler, collaborators.tester)
    registry.register_class(CreateContentHandler, collaborators.content_creator)
    registry.register_class(PublishVideoHandler, collaborators.publisher)
    registry.register_class(SendEmailHandler, collaborators.mailer)
    registry.register_class(SendScheduledEmailHandler, collaborators.mailer)
    registry.register_class(TrackEventHandler, collaborators.analytics)
    return registry

"""Lifecycle email sequences scheduled as delayed notification jobs."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from autopilot.lib.logger import configure_logger
from autopilot.services.infrastructure.job_management.dispatcher import (
    JobOptions,
    JobPriority,
)
from autopilot.services.infrastructure.job_management.job_manager import JobManager
from autopilot.services.infrastructure.job_management.queues import (
    JobTypes,
    QueueName,
)

logger = configure_logger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class EmailStep:
    delay_ms: int
    template: str
    # Evaluated by the mailer when the job runs
    condition: Optional[str] = None


@dataclass(frozen=True)
class AutomationRule:
    name: str
    trigger: str
    steps: Tuple[EmailStep, ...]


DEFAULT_RULES: Tuple[AutomationRule, ...] = (
    AutomationRule(
        "welcome_series",
        "customer_request_created",
        (
            EmailStep(0, "welcome"),
            EmailStep(DAY_MS, "getting_started_tips", "no_payment"),
            EmailStep(3 * DAY_MS, "workflow_examples", "no_payment"),
            EmailStep(7 * DAY_MS, "special_offer", "no_payment"),
        ),
    ),
    AutomationRule(
        "payment_followup",
        "customer_request_quoted",
        (
            EmailStep(2 * HOUR_MS, "payment_reminder", "no_payment"),
            EmailStep(DAY_MS, "payment_urgent", "no_payment"),
            EmailStep(3 * DAY_MS, "offer_assistance", "no_payment"),
        ),
    ),
    AutomationRule(
        "completion_followup",
        "workflow_delivered",
        (
            EmailStep(DAY_MS, "delivery_followup"),
            EmailStep(7 * DAY_MS, "feedback_request"),
            EmailStep(30 * DAY_MS, "upsell_automation"),
        ),
    ),
    AutomationRule(
        "abandoned_cart",
        "payment_intent_created",
        (
            EmailStep(2 * HOUR_MS, "cart_reminder", "payment_not_completed"),
            EmailStep(DAY_MS, "cart_urgent", "payment_not_completed"),
            EmailStep(3 * DAY_MS, "cart_discount", "payment_not_completed"),
        ),
    ),
)


class EmailAutomationService:
    """Turns business events into scheduled ``send-scheduled-email`` jobs."""

    def __init__(
        self,
        job_manager: JobManager,
        rules: Tuple[AutomationRule, ...] = DEFAULT_RULES,
    ):
        self.job_manager = job_manager
        self.rules = rules

    def rules_for(self, event_type: str) -> List[AutomationRule]:
        return [rule for rule in self.rules if rule.trigger == event_type]

    async def trigger(self, event_type: str, event_data: Dict[str, Any]) -> List[str]:
        """Schedule every step of every rule listening for ``event_type``.

        Returns the ids of the queued jobs; unknown events schedule nothing.
        """
        job_ids: List[str] = []
        for rule in self.rules_for(event_type):
            logger.info(
                f"Triggering email automation: {rule.name}",
                extra={
                    "event_type": event_type,
                    "customer_request_id": event_data.get("customer_request_id"),
                },
            )
            for step in rule.steps:
                job_ids.append(await self._schedule(rule, step, event_data))
        return job_ids

    async def _schedule(
        self, rule: AutomationRule, step: EmailStep, event_data: Dict[str, Any]
    ) -> str:
        payload = {
            "customer_request_id": event_data.get("customer_request_id"),
            "customer_email": event_data.get("customer_email"),
            "template": step.template,
            "condition": step.condition,
            "rule_name": rule.name,
            "event_data": event_data,
        }
        return await self.job_manager.enqueue(
            QueueName.NOTIFICATIONS,
            JobTypes.SEND_SCHEDULED_EMAIL,
            payload,
            JobOptions(priority=int(JobPriority.LOW), delay_ms=max(step.delay_ms, 0)),
        )

"""HTTP adapters for the external content services job handlers delegate to."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from autopilot.config import CollaboratorConfig
from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)


class CollaboratorError(Exception):
    """An external service is unconfigured or answered with an error."""

    def __init__(
        self, collaborator: str, message: str, status_code: Optional[int] = None
    ):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator
        self.status_code = status_code


class HttpCollaborator:
    """POSTs a job payload to a configured URL and returns the JSON answer."""

    def __init__(
        self,
        name: str,
        url: str,
        client: httpx.AsyncClient,
        api_key: str = "",
        timeout: float = 300.0,
    ):
        self.name = name
        self.url = url
        self.client = client
        self.api_key = api_key
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.url:
            raise CollaboratorError(self.name, "service URL is not configured")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = await self.client.post(
                self.url, json=payload, headers=headers, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise CollaboratorError(self.name, f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise CollaboratorError(self.name, f"request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                f"Collaborator answered with an error: {self.name}",
                extra={
                    "status_code": response.status_code,
                    "event_type": "collaborator_error",
                },
            )
            raise CollaboratorError(
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise CollaboratorError(self.name, "response is not valid JSON") from e
        return body if isinstance(body, dict) else {"data": body}


@dataclass
class Collaborators:
    generator: HttpCollaborator
    tester: HttpCollaborator
    content_creator: HttpCollaborator
    publisher: HttpCollaborator
    mailer: HttpCollaborator
    analytics: HttpCollaborator

    @classmethod
    def from_config(
        cls, collaborator_config: CollaboratorConfig, client: httpx.AsyncClient
    ) -> "Collaborators":
        def build(name: str, url: str) -> HttpCollaborator:
            return HttpCollaborator(
                name,
                url,
                client,
                api_key=collaborator_config.api_key,
                timeout=collaborator_config.timeout_seconds,
            )

        collaborators = cls(
            generator=build("workflow-generator", collaborator_config.generator_url),
            tester=build("workflow-tester", collaborator_config.tester_url),
            content_creator=build(
                "content-creator", collaborator_config.content_creator_url
            ),
            publisher=build("video-publisher", collaborator_config.publisher_url),
            mailer=build("mailer", collaborator_config.mailer_url),
            analytics=build("analytics", collaborator_config.analytics_url),
        )
        missing = [
            name
            for name, collaborator in vars(collaborators).items()
            if not collaborator.configured
        ]
        if missing:
            logger.warning(
                "Some collaborators are not configured; their jobs will fail",
                extra={"missing": ",".join(missing), "event_type": "collaborator_config"},
            )
        return collaborators

"""
Deployment stream records.

After a registration the image is announced on the `unstable` deployment
stream so downstream observers can pick the new version up. Records are
transacted as entities: attribute names without a namespace are qualified
with the entity type (`deployment/stream` + `name` -> `deployment.stream/name`).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from skill_registration.core.config import settings
from skill_registration.core.exceptions import EventStreamError
from skill_registration.schemas.events import DockerImage

logger = logging.getLogger(__name__)

UNSTABLE_STREAM = "unstable"


def entity(entity_type: str, attributes: Dict[str, Any], entity_id: Optional[str] = None) -> Dict[str, Any]:
    """Build one transactable entity of `entity_type`."""
    prefix = entity_type.replace("/", ".")
    record: Dict[str, Any] = {"schema/entity-type": f":{entity_type}"}
    if entity_id:
        record["schema/entity"] = entity_id
    for key, value in attributes.items():
        if value is None:
            continue
        qualified = key if "/" in key else f"{prefix}/{key}"
        record[qualified] = value
    return record


def deployment_stream_entities(
    image: DockerImage,
    stream: str,
    namespace: str,
    name: str,
) -> List[Dict[str, Any]]:
    return [
        entity(
            "docker/repository",
            {"host": image.repository.host, "repository": image.repository.name},
            entity_id="$repository",
        ),
        entity(
            "deployment/stream",
            {
                "docker.platform/architecture": "amd64",
                "docker.platform/os": "linux",
                "docker.image/repository": "$repository",
                "image.recorded/digest": image.digest,
                "name": stream,
                "appname": f"{namespace}/{name}",
            },
        ),
    ]


class EventStreamService:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        url: Optional[str] = None,
        api_token: Optional[str] = None,
    ):
        self.url = url or settings.EVENT_STREAM_URL
        self.api_token = api_token or settings.CATALOG_API_TOKEN
        self._client = client or httpx.Client(timeout=30.0)

    def transact(self, entities: List[Dict[str, Any]]) -> None:
        """
        Send entities to the event stream.

        Raises:
            EventStreamError: On transport failure or a non-2xx response
        """
        if not self.url:
            logger.warning("EVENT_STREAM_URL is not set. Skipping deployment stream record.")
            return

        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        try:
            response = self._client.post(self.url, json={"entities": entities}, headers=headers)
        except httpx.RequestError as e:
            raise EventStreamError("Deployment stream", str(e)) from e

        if response.status_code not in (200, 201, 202):
            logger.error(f"Failed to transact stream record: {response.status_code} - {response.text}")
            raise EventStreamError("Deployment stream", f"HTTP {response.status_code}")

    def record_deployment(self, image: DockerImage, namespace: str, name: str, stream: str = UNSTABLE_STREAM) -> None:
        logger.info(f"Recording {namespace}/{name} on the {stream} deployment stream")
        self.transact(deployment_stream_entities(image, stream, namespace, name))

    def close(self) -> None:
        self._client.close()

import httpx
import logging
from typing import Dict, Any, Optional
from skill_registration.core.config import settings
from skill_registration.core.exceptions import CatalogError
from skill_registration.schemas.skill import SkillDescriptor

logger = logging.getLogger(__name__)

REGISTER_SKILL_MUTATION = """
mutation registerSkill($skill: AtomistSkillInput!) {
  registerSkill(skill: $skill) {
    namespace
    name
    version
  }
}
"""

class CatalogService:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        url: Optional[str] = None,
        api_token: Optional[str] = None,
    ):
        """Initialize service with the catalog endpoint from configuration."""
        self.url = url or settings.CATALOG_GRAPHQL_URL
        self.api_token = api_token or settings.CATALOG_API_TOKEN
        self._client = client or httpx.Client(timeout=30.0)

        logger.debug(f"CatalogService initialized for {self.url}")

    def _get_headers(self) -> Dict[str, str]:
        """Generate headers with the configured API token."""
        if not self.api_token:
            logger.warning("CATALOG_API_TOKEN is not set. Catalog registration will likely fail.")
        return {
            "Authorization": f"Bearer {self.api_token or ''}",
            "Content-Type": "application/json"
        }

    def register_skill(self, descriptor: SkillDescriptor) -> Dict[str, Any]:
        """
        Submit a finished descriptor with the registerSkill mutation.

        Args:
            descriptor: Descriptor with version, resources and artifacts resolved

        Returns:
            The mutation's `data` object

        Raises:
            CatalogError: On transport failure, a non-200 response or GraphQL errors
        """
        body = {
            "query": REGISTER_SKILL_MUTATION,
            "variables": {"skill": descriptor.to_catalog_payload()},
        }

        logger.info(f"Registering {descriptor.qualified_name}@{descriptor.version} with catalog")

        try:
            response = self._client.post(self.url, json=body, headers=self._get_headers())
        except httpx.RequestError as e:
            logger.error(f"Error calling catalog: {str(e)}")
            raise CatalogError("Catalog registration", str(e)) from e

        if response.status_code != 200:
            logger.error(f"Failed to register skill: {response.status_code} - {response.text}")
            raise CatalogError("Catalog registration", f"HTTP {response.status_code}: {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Catalog returned a non-JSON response: {response.text[:200]}")
            raise CatalogError("Catalog registration", "response is not valid JSON") from e

        errors = data.get("errors")
        if errors:
            messages = "; ".join(e.get("message", str(e)) for e in errors)
            logger.error(f"Catalog rejected {descriptor.qualified_name}: {messages}")
            raise CatalogError("Catalog registration", messages)

        logger.info(f"Successfully registered {descriptor.qualified_name}@{descriptor.version}")
        return data.get("data") or {}

    def close(self) -> None:
        self._client.close()

import logging
from dataclasses import dataclass
from typing import Optional

from skill_registration.core.config import settings
from skill_registration.schemas.events import DockerImage, DockerRegistry, DockerRegistryType
from skill_registration.schemas.skill import DockerArtifact, SkillDescriptor
from skill_registration.services.cache import ArtifactCache
from skill_registration.services.image_transport import ImageTransport

logger = logging.getLogger(__name__)

SKILL_API_LABEL = "com.docker.skill.api.version"
CONTAINER_MODE = "container"


@dataclass(frozen=True)
class SkillClassification:
    """Parsed `<execution-mode>/<api-version>` label, e.g. container/v1."""
    mode: str
    api_version: str

    @property
    def is_container(self) -> bool:
        return self.mode == CONTAINER_MODE


def classify_image(image: DockerImage) -> Optional[SkillClassification]:
    """
    Read the skill API label of an image.

    Returns:
        The classification, or None when the label is missing or malformed
    """
    value = image.label(SKILL_API_LABEL)
    if not value:
        return None
    mode, sep, api_version = value.strip().partition("/")
    if not sep or not mode or not api_version:
        logger.warning(f"Ignoring malformed {SKILL_API_LABEL} label '{value}'")
        return None
    return SkillClassification(mode=mode, api_version=api_version)


class ArtifactPublisher:
    """
    Makes sure a container skill's image lives in the canonical registry.

    Images already below the canonical host and repository prefix are
    referenced in place; anything else is copied once per destination name,
    tracked by the injected cache.
    """

    def __init__(
        self,
        transport: ImageTransport,
        cache: ArtifactCache,
        canonical_host: Optional[str] = None,
        repository_prefix: Optional[str] = None,
        service_account: Optional[str] = None,
    ):
        self.transport = transport
        self.cache = cache
        self.canonical_host = canonical_host or settings.CANONICAL_REGISTRY_HOST
        self.repository_prefix = repository_prefix or settings.CANONICAL_REPOSITORY_PREFIX
        self.service_account = service_account or settings.CANONICAL_SERVICE_ACCOUNT

    def canonical_registry(self) -> DockerRegistry:
        return DockerRegistry(
            id="canonical-registry",
            type=DockerRegistryType.GCR,
            server_url=self.canonical_host,
            service_account=self.service_account,
        )

    def is_canonical(self, image: DockerImage) -> bool:
        return (
            image.repository.host == self.canonical_host
            and image.repository.name.startswith(self.repository_prefix)
        )

    def destination_name(self, namespace: str, name: str, version: str) -> str:
        """
        Canonical image name for a skill version.

        Example:
            gcr.io/atomist-container-skills/acme-widget:1.2.3.skill
        """
        return f"{self.canonical_host}/{self.repository_prefix}{namespace}-{name}:{version}.skill"

    def ensure_copied(
        self,
        image: DockerImage,
        destination: str,
        source_registry: Optional[DockerRegistry],
    ) -> None:
        """
        Copy `image` to `destination` unless it was copied before.

        Raises:
            ImageTransportError: If the copy fails
        """
        if self.cache.contains(destination):
            logger.info(f"Image already copied to {destination}, skipping")
            return

        self.transport.copy_image(image.full_name, destination, source_registry, self.canonical_registry())
        self.cache.add(destination)

    def publish(
        self,
        image: DockerImage,
        descriptor: SkillDescriptor,
        source_registry: Optional[DockerRegistry],
    ) -> SkillDescriptor:
        """
        Attach the container artifact to a descriptor.

        Args:
            image: Image the skill was built into
            descriptor: Descriptor with a resolved version
            source_registry: Credential that succeeded when downloading `image`

        Returns:
            The descriptor with artifacts.docker[0] pointing at the published
            image; unchanged for non-container skills
        """
        classification = classify_image(image)
        if classification is None or not classification.is_container:
            logger.info(f"{descriptor.qualified_name} is not a container skill, no artifact published")
            return descriptor

        if self.is_canonical(image):
            published = image.full_name
        else:
            published = self.destination_name(descriptor.namespace, descriptor.name, descriptor.version)
            self.ensure_copied(image, published, source_registry)

        docker = list(descriptor.artifacts.docker)
        artifact = docker[0] if docker else DockerArtifact()
        artifact = artifact.model_copy(update={"name": artifact.name or "skill", "image": published})
        if docker:
            docker[0] = artifact
        else:
            docker.append(artifact)

        artifacts = descriptor.artifacts.model_copy(update={"docker": docker})
        return descriptor.model_copy(update={"artifacts": artifacts})

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Hosts that are implied when rendering a Docker Hub image name
DOCKER_HUB_HOSTS = ("hub.docker.com", "docker.io")


class EventModel(BaseModel):
    """Event payloads arrive camelCased; accept snake_case too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DockerRegistryType(str, Enum):
    ECR = "ECR"
    GCR = "GCR"
    GHCR = "GHCR"
    DOCKER_HUB = "DOCKER_HUB"
    OTHER = "OTHER"

    @classmethod
    def _missing_(cls, value):
        return cls.OTHER


class DockerRegistry(EventModel):
    id: str
    type: DockerRegistryType = DockerRegistryType.OTHER
    server_url: str
    username: Optional[str] = None
    secret: Optional[str] = None
    # Identity reference for registries authenticated through a credential helper
    service_account: Optional[str] = None


class DockerRepository(EventModel):
    host: str
    name: str  # repository path, e.g. "atomist-skills/demo"


class DockerImageLabel(EventModel):
    name: str
    value: Optional[str] = None


class ManifestListEntry(EventModel):
    digest: str
    tags: List[str] = []


class DockerImage(EventModel):
    repository: DockerRepository
    digest: Optional[str] = None
    tags: List[str] = []
    labels: List[DockerImageLabel] = []
    manifest_list: List[ManifestListEntry] = []

    def label(self, name: str) -> Optional[str]:
        """Return the value of the first label called `name`."""
        for label in self.labels:
            if label.name == name:
                return label.value
        return None

    @property
    def image_name(self) -> str:
        """Repository name, prefixed with the host unless it is Docker Hub."""
        if self.repository.host in DOCKER_HUB_HOSTS:
            return self.repository.name
        return f"{self.repository.host}/{self.repository.name}"

    @property
    def resolved_digest(self) -> Optional[str]:
        """A manifest-list digest takes precedence over the image digest."""
        if self.manifest_list:
            return self.manifest_list[0].digest
        return self.digest

    @property
    def full_name(self) -> str:
        """
        Fully-qualified reference pinned to exactly one of digest or tag.

        Examples:
            gcr.io/org/image@sha256:abc
            ghcr.io/org/image:1.0.0
        """
        digest = self.resolved_digest
        if digest:
            return f"{self.image_name}@{digest}"
        if self.tags:
            return f"{self.image_name}:{self.tags[0]}"
        return self.image_name


class GitRef(EventModel):
    type: str  # "tag", "branch", ...
    name: str


class Org(EventModel):
    name: str
    installation_token: Optional[str] = None


class Repo(EventModel):
    name: str
    org: Org
    source_id: Optional[str] = None


class Commit(EventModel):
    sha: str
    repo: Repo
    refs: List[GitRef] = []

    @property
    def owner(self) -> str:
        return self.repo.org.name


class RegisterSkillEvent(EventModel):
    """A new image was built for a commit."""
    image: DockerImage
    commit: Commit
    registries: List[DockerRegistry] = Field(default_factory=list)

    @field_validator("registries")
    @classmethod
    def unique_registries(cls, v: List[DockerRegistry]) -> List[DockerRegistry]:
        """Drop duplicate registry entries, keeping the first per id."""
        seen = set()
        unique = []
        for registry in v:
            if registry.id in seen:
                continue
            seen.add(registry.id)
            unique.append(registry)
        return unique

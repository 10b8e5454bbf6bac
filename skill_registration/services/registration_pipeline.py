"""
Skill Registration Pipeline

Runs one registration end to end:

1. download the image (Image Transport)
2. resolve descriptors from the image or the source repository
3. resolve versions
4. inline subscription and schema resources
5. publish the container artifact
6. register with the catalog, tag the commit, record the deployment stream

Steps run sequentially and the first failure aborts the invocation. Every
descriptor is fully prepared, including image copies, before the first
catalog mutation, so a failed copy never leaves a partial registration.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from skill_registration.core.exceptions import SourceControlError
from skill_registration.schemas.events import RegisterSkillEvent
from skill_registration.schemas.skill import SkillDescriptor
from skill_registration.services.artifact_publisher import ArtifactPublisher
from skill_registration.services.cache import ArtifactCache
from skill_registration.services.catalog_service import CatalogService
from skill_registration.services.descriptor_resolver import DescriptorResolver
from skill_registration.services.event_stream import EventStreamService
from skill_registration.services.github_service import GitHubService
from skill_registration.services.image_transport import ImageTransport
from skill_registration.services.resource_inliner import inline_resources
from skill_registration.services.version_resolver import VersionResolver

logger = logging.getLogger(__name__)

CHECK_RUN_STARTED = "Registering skill"


@dataclass
class RegistrationResult:
    skills: List[SkillDescriptor] = field(default_factory=list)
    tags_created: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        names = ", ".join(f"{s.qualified_name}@{s.version}" for s in self.skills)
        return f"Successfully registered {names}"

    @property
    def check_summary(self) -> str:
        names = ", ".join(f"`{s.qualified_name}@{s.version}`" for s in self.skills)
        return f"Successfully registered {names}"


class RegistrationPipeline:
    def __init__(
        self,
        cache: ArtifactCache,
        transport: Optional[ImageTransport] = None,
        catalog: Optional[CatalogService] = None,
        event_stream: Optional[EventStreamService] = None,
        github_factory: Callable[[Optional[str]], GitHubService] = GitHubService,
        prefer_repository: Optional[bool] = None,
    ):
        self.transport = transport or ImageTransport()
        self.publisher = ArtifactPublisher(self.transport, cache)
        self.catalog = catalog or CatalogService()
        self.event_stream = event_stream or EventStreamService()
        self.github_factory = github_factory
        self.prefer_repository = prefer_repository

    def register(self, event: RegisterSkillEvent) -> RegistrationResult:
        """
        Register every skill built into the event's image.

        The outcome is reported as a check run on the commit: opened before
        the first step and concluded with success or failure.

        Raises:
            RegistrationError: On the first failing step
        """
        image = event.image
        commit = event.commit
        owner, repo = commit.owner, commit.repo.name
        logger.info(f"Registering skill(s) from {owner}/{repo}@{commit.sha} (image {image.full_name})")

        github = self.github_factory(commit.repo.org.installation_token)
        try:
            check_run_id = self._open_check(github, owner, repo, commit.sha)
            try:
                result = self._register(event, github)
            except Exception as e:
                self._conclude_check(github, owner, repo, check_run_id, "failure", str(e))
                raise
            self._conclude_check(github, owner, repo, check_run_id, "success", result.check_summary)
        finally:
            github.close()

        logger.info(result.message)
        return result

    def _register(self, event: RegisterSkillEvent, github: GitHubService) -> RegistrationResult:
        image = event.image
        commit = event.commit
        owner, repo = commit.owner, commit.repo.name
        resolver = DescriptorResolver(github, self.prefer_repository)
        versions = VersionResolver(image, commit, lambda: github.list_tags(owner, repo))
        result = RegistrationResult()

        with tempfile.TemporaryDirectory(prefix="skill-registration-") as scratch:
            scratch_dir = Path(scratch)
            image_root, registry = self.transport.download_image(image, event.registries, scratch_dir)

            project_dir = resolver.locate_project(image_root, commit, scratch_dir)
            prepared = []
            for descriptor in resolver.resolve(project_dir, commit):
                descriptor = descriptor.model_copy(update={"version": versions.resolve(descriptor.version)})
                descriptor = inline_resources(descriptor, project_dir)
                descriptor = self.publisher.publish(image, descriptor, registry)
                prepared.append(descriptor)

        for descriptor in prepared:
            self.catalog.register_skill(descriptor)
            if github.ensure_tag(owner, repo, descriptor.version, commit.sha):
                result.tags_created.append(descriptor.version)
            self.event_stream.record_deployment(image, descriptor.namespace, descriptor.name)
            result.skills.append(descriptor)
        return result

    def _open_check(self, github: GitHubService, owner: str, repo: str, sha: str) -> Optional[int]:
        try:
            return github.create_check_run(owner, repo, sha, CHECK_RUN_STARTED)
        except SourceControlError as e:
            logger.warning(f"Could not open check run on {owner}/{repo}@{sha}: {e}")
            return None

    def _conclude_check(
        self,
        github: GitHubService,
        owner: str,
        repo: str,
        check_run_id: Optional[int],
        conclusion: str,
        summary: str,
    ) -> None:
        if check_run_id is None:
            return
        try:
            github.update_check_run(owner, repo, check_run_id, conclusion, summary)
        except SourceControlError as e:
            logger.warning(f"Could not conclude check run {check_run_id} on {owner}/{repo}: {e}")

    def close(self) -> None:
        """Release the HTTP clients of the catalog and event stream."""
        self.catalog.close()
        self.event_stream.close()

import logging
from typing import Callable, Iterable, List, Optional

import semver

from skill_registration.schemas.events import Commit, DockerImage

logger = logging.getLogger(__name__)

VERSION_LABEL = "com.docker.skill.version"
DEFAULT_BASE_VERSION = "0.1.0"


def parse_version(value: Optional[str]) -> Optional[semver.Version]:
    """
    Parse a semantic version, accepting surrounding whitespace and a leading "v" or "=" prefix.

    Returns:
        The parsed version, or None if `value` is not a valid semantic version
    """
    if not value:
        return None
    candidate = value.strip().lstrip("=v")
    try:
        return semver.Version.parse(candidate)
    except ValueError:
        return None


def first_valid_version(candidates: Iterable[str]) -> Optional[str]:
    """First candidate that parses, normalized without its prefix ("=1.2.3" -> "1.2.3")."""
    for candidate in candidates:
        version = parse_version(candidate)
        if version is not None:
            return str(version)
    return None


def next_patch_version(tags: Iterable[str]) -> str:
    """
    Next patch version after the highest valid semantic-version tag.

    A pre-release is finalized rather than bumped (1.2.3-rc.1 -> 1.2.3).
    Without any valid tag the base version 0.1.0 is bumped to 0.1.1.
    """
    versions = [v for v in (parse_version(t) for t in tags) if v is not None]
    latest = max(versions) if versions else semver.Version.parse(DEFAULT_BASE_VERSION)
    if latest.prerelease:
        next_version = latest.finalize_version()
    else:
        next_version = latest.bump_patch()
    logger.debug(f"Calculated next tag '{next_version}' from current tag '{latest}'")
    return str(next_version)


class VersionResolver:
    """
    Decides the published version for every descriptor of one invocation.

    Signals are checked in strict priority order:
    1. a semantic-version tag on the image
    2. the com.docker.skill.version image label
    3. a semantic-version tag ref on the commit
    4. the version declared in the descriptor
    5. the next patch version after the repository's latest tag

    The fifth signal needs a remote tag listing; it is computed at most once
    and shared, so sibling descriptors of a multi-skill file do not race
    each other to consecutive patch versions.
    """

    def __init__(
        self,
        image: DockerImage,
        commit: Commit,
        list_tags: Callable[[], List[str]],
    ):
        self.image = image
        self.commit = commit
        self._list_tags = list_tags
        self._fallback: Optional[str] = None

    def from_image_tag(self) -> Optional[str]:
        return first_valid_version(self.image.tags)

    def from_image_label(self) -> Optional[str]:
        return self.image.label(VERSION_LABEL) or None

    def from_commit_ref(self) -> Optional[str]:
        return first_valid_version(ref.name for ref in self.commit.refs if ref.type == "tag")

    def fallback_version(self) -> str:
        if self._fallback is None:
            self._fallback = next_patch_version(self._list_tags())
        return self._fallback

    def resolve(self, declared_version: Optional[str] = None) -> str:
        """
        Resolve the version for one descriptor.

        Args:
            declared_version: The version field of the merged descriptor, if any

        Returns:
            The highest-priority version signal available
        """
        for source, version in (
            ("image tag", self.from_image_tag()),
            ("image label", self.from_image_label()),
            ("commit tag", self.from_commit_ref()),
            ("descriptor", declared_version or None),
        ):
            if version:
                logger.info(f"Using version {version} from {source}")
                return version

        version = self.fallback_version()
        logger.info(f"Using computed next version {version}")
        return version

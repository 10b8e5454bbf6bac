"""
Descriptor Resolver

Builds the skill descriptors for one commit: generated defaults layered
under each document of the skill.yaml file, validated into SkillDescriptor
records. Downstream steps never re-validate the shape.
"""

import base64
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from skill_registration.core.config import settings
from skill_registration.core.exceptions import DescriptorError
from skill_registration.schemas.events import Commit
from skill_registration.schemas.skill import SkillDescriptor
from skill_registration.services.github_service import GitHubService
from skill_registration.utils.merge import merge_by_name

logger = logging.getLogger(__name__)

DESCRIPTOR_FILE = "skill.yaml"
ICON_FILE = "icon.svg"

# Descriptor keys holding definitions identified by name
KEYED_LIST_FIELDS = ("datalogSubscriptions", "schemata")


def build_defaults(project_dir: Path, commit: Commit) -> Dict[str, Any]:
    """
    Generate the default descriptor for a commit.

    Args:
        project_dir: Root of the skill's file tree (image or clone)
        commit: Commit the image was built from

    Returns:
        camelCased descriptor mapping
    """
    org = commit.repo.org.name
    repo = commit.repo.name
    description = f"Atomist Skill registered from {org}/{repo}"

    icon_path = project_dir / ICON_FILE
    if icon_path.is_file():
        icon = base64.b64encode(icon_path.read_bytes()).decode()
        icon_url = f"data:image/svg+xml;base64,{icon}"
    else:
        icon_url = f"{settings.GITHUB_URL.rstrip('/')}/{org}.png"

    reserved = org == settings.RESERVED_ORG
    return {
        "namespace": settings.RESERVED_NAMESPACE if reserved else org,
        "name": repo,
        "displayName": repo,
        "author": settings.RESERVED_AUTHOR if reserved else org,
        "description": description,
        "longDescription": description,
        "readme": base64.b64encode(description.encode()).decode(),
        "iconUrl": icon_url,
        "homepageUrl": f"{settings.GITHUB_URL.rstrip('/')}/{org}/{repo}",
        "license": settings.DEFAULT_LICENSE,
    }


def has_descriptor(project_dir: Path) -> bool:
    return (project_dir / DESCRIPTOR_FILE).is_file()


def load_descriptor_documents(project_dir: Path) -> List[Dict[str, Any]]:
    """
    Load every skill defined in skill.yaml.

    Each YAML document is one skill: its `skill` mapping, or the whole
    document when it has no `skill` key. Empty documents are skipped.

    Raises:
        DescriptorError: If the file is not valid YAML or a document is not a mapping
    """
    path = project_dir / DESCRIPTOR_FILE
    if not path.is_file():
        return []

    try:
        documents = list(yaml.safe_load_all(path.read_text()))
    except yaml.YAMLError as e:
        raise DescriptorError(DESCRIPTOR_FILE, str(e)) from e

    skills = []
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise DescriptorError(DESCRIPTOR_FILE, f"document {index + 1} is not a mapping")
        skill = document.get("skill", document)
        if not isinstance(skill, dict):
            raise DescriptorError(DESCRIPTOR_FILE, f"document {index + 1} has a non-mapping 'skill' entry")
        skills.append(skill)

    logger.info(f"Loaded {len(skills)} skill definition(s) from {DESCRIPTOR_FILE}")
    return skills


def apply_patches(patches: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Layer partial descriptors left to right.

    - datalogSubscriptions and schemata merge by name
    - every other key present in a later patch overwrites the earlier value
    """
    merged: Dict[str, Any] = {}
    for patch in patches:
        for key, value in patch.items():
            current = merged.get(key)
            if key in KEYED_LIST_FIELDS and isinstance(current, list) and isinstance(value, list):
                merged[key] = merge_by_name(current, value)
            else:
                merged[key] = value
    return merged


class DescriptorResolver:
    """Locates the skill tree for a commit and resolves its descriptors."""

    def __init__(self, github: GitHubService, prefer_repository: Optional[bool] = None):
        self.github = github
        self.prefer_repository = (
            settings.PREFER_REPOSITORY_DESCRIPTOR if prefer_repository is None else prefer_repository
        )

    def locate_project(self, image_root: Path, commit: Commit, scratch_dir: Path) -> Path:
        """
        Pick the tree to read the descriptor from.

        The downloaded image root is used when it contains skill.yaml;
        otherwise (or when repository descriptors are preferred) the source
        repository is cloned at the commit into `scratch_dir`.
        """
        if not self.prefer_repository and has_descriptor(image_root):
            logger.info(f"Using {DESCRIPTOR_FILE} from image")
            return image_root

        logger.info(f"Resolving {DESCRIPTOR_FILE} from source repository {commit.owner}/{commit.repo.name}")
        return self.github.clone_at_commit(
            commit.owner,
            commit.repo.name,
            commit.sha,
            scratch_dir / "repository",
        )

    def resolve(self, project_dir: Path, commit: Commit) -> List[SkillDescriptor]:
        """
        Build one validated descriptor per skill definition.

        Raises:
            DescriptorError: If a merged descriptor fails validation
        """
        defaults = build_defaults(project_dir, commit)
        documents = load_descriptor_documents(project_dir) or [{}]
        provenance = {"repoId": commit.repo.source_id, "commitSha": commit.sha}

        descriptors = []
        for document in documents:
            merged = apply_patches([defaults, document, provenance])
            try:
                descriptors.append(SkillDescriptor.model_validate(merged))
            except ValidationError as e:
                raise DescriptorError(DESCRIPTOR_FILE, str(e)) from e
        return descriptors

import pytest

from skill_registration.schemas.events import Commit, DockerImage, RegisterSkillEvent


@pytest.fixture
def image_payload():
    """Container skill image built from atomist-skills/demo."""
    return {
        "repository": {"host": "ghcr.io", "name": "atomist-skills/demo"},
        "digest": "sha256:abc",
        "tags": ["1.0.0"],
        "labels": [{"name": "com.docker.skill.api.version", "value": "container/v1"}],
    }


@pytest.fixture
def commit_payload():
    return {
        "sha": "abc123",
        "repo": {
            "name": "demo",
            "sourceId": "R_1",
            "org": {"name": "atomist-skills", "installationToken": "installation-token"},
        },
        "refs": [],
    }


@pytest.fixture
def event_payload(image_payload, commit_payload):
    return {
        "image": image_payload,
        "commit": commit_payload,
        "registries": [
            {
                "id": "ghcr",
                "type": "GHCR",
                "serverUrl": "ghcr.io",
                "username": "bot",
                "secret": "ghcr-secret",
            }
        ],
    }


@pytest.fixture
def image(image_payload):
    return DockerImage.model_validate(image_payload)


@pytest.fixture
def commit(commit_payload):
    return Commit.model_validate(commit_payload)


@pytest.fixture
def event(event_payload):
    return RegisterSkillEvent.model_validate(event_payload)

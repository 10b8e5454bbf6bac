from skill_registration.schemas.events import DockerImage, DockerRegistryType, RegisterSkillEvent


def test_event_parses_camel_case(event):
    assert event.commit.owner == "atomist-skills"
    assert event.commit.repo.source_id == "R_1"
    assert event.commit.repo.org.installation_token == "installation-token"
    assert event.registries[0].server_url == "ghcr.io"
    assert event.registries[0].type == DockerRegistryType.GHCR


def test_full_name_prefers_digest(image):
    assert image.full_name == "ghcr.io/atomist-skills/demo@sha256:abc"


def test_full_name_prefers_manifest_list_digest(image_payload):
    image_payload["manifestList"] = [{"digest": "sha256:list", "tags": ["1.0.0"]}]
    image = DockerImage.model_validate(image_payload)
    assert image.resolved_digest == "sha256:list"
    assert image.full_name == "ghcr.io/atomist-skills/demo@sha256:list"


def test_full_name_falls_back_to_first_tag():
    image = DockerImage.model_validate(
        {"repository": {"host": "docker.io", "name": "acme/widget"}, "tags": ["2.0.0", "latest"]}
    )
    # Docker Hub images are named without their host
    assert image.full_name == "acme/widget:2.0.0"


def test_label_lookup(image):
    assert image.label("com.docker.skill.api.version") == "container/v1"
    assert image.label("missing") is None


def test_duplicate_registries_are_dropped(event_payload):
    event_payload["registries"].append(
        {"id": "ghcr", "type": "GHCR", "serverUrl": "ghcr.io", "username": "other", "secret": "x"}
    )
    event = RegisterSkillEvent.model_validate(event_payload)
    assert len(event.registries) == 1
    assert event.registries[0].username == "bot"


def test_registries_default_to_empty(event_payload):
    del event_payload["registries"]
    event = RegisterSkillEvent.model_validate(event_payload)
    assert event.registries == []

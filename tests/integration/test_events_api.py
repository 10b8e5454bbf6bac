from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from skill_registration.api.events import get_pipeline
from skill_registration.core.exceptions import DescriptorError, ImageTransportError
from skill_registration.main import app
from skill_registration.schemas.skill import DockerArtifact, SkillArtifacts, SkillDescriptor
from skill_registration.services.registration_pipeline import RegistrationResult


@pytest.fixture
def pipeline():
    pipeline = MagicMock()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield pipeline
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def registered():
    return SkillDescriptor(
        namespace="atomist",
        name="demo",
        version="1.0.0",
        artifacts=SkillArtifacts(docker=[
            DockerArtifact(image="gcr.io/atomist-container-skills/atomist-demo:1.0.0.skill"),
        ]),
    )


def test_register_skill_success(client, pipeline, event_payload, registered):
    pipeline.register.return_value = RegistrationResult(skills=[registered], tags_created=["1.0.0"])

    response = client.post("/api/events/register-skill", json=event_payload)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["message"] == "Successfully registered atomist/demo@1.0.0"
    assert body["skills"] == [{
        "namespace": "atomist",
        "name": "demo",
        "version": "1.0.0",
        "image": "gcr.io/atomist-container-skills/atomist-demo:1.0.0.skill",
    }]
    assert body["tags_created"] == ["1.0.0"]

    event = pipeline.register.call_args.args[0]
    assert event.commit.sha == "abc123"


def test_transport_failure_is_reported(client, pipeline, event_payload):
    pipeline.register.side_effect = ImageTransportError("Image download", "no registry credential succeeded")

    response = client.post("/api/events/register-skill", json=event_payload)

    assert response.status_code == 502
    assert response.json() == {
        "status": "failed",
        "message": "Image download failed: no registry credential succeeded",
    }


def test_descriptor_failure_is_reported(client, pipeline, event_payload):
    pipeline.register.side_effect = DescriptorError("skill.yaml", "document 1 is not a mapping")

    response = client.post("/api/events/register-skill", json=event_payload)

    assert response.status_code == 422
    assert response.json()["status"] == "failed"
    assert "skill.yaml" in response.json()["message"]


def test_invalid_event_is_rejected(client, pipeline):
    response = client.post("/api/events/register-skill", json={"image": {}})

    assert response.status_code == 422
    assert "detail" in response.json()
    pipeline.register.assert_not_called()


class TestWebhookSecret:
    def test_missing_secret(self, client, pipeline, event_payload):
        with patch("skill_registration.api.events.settings") as mock_settings:
            mock_settings.WEBHOOK_SECRET = "hook-secret"
            response = client.post("/api/events/register-skill", json=event_payload)

        assert response.status_code == 401
        pipeline.register.assert_not_called()

    def test_wrong_secret(self, client, pipeline, event_payload):
        with patch("skill_registration.api.events.settings") as mock_settings:
            mock_settings.WEBHOOK_SECRET = "hook-secret"
            response = client.post(
                "/api/events/register-skill",
                json=event_payload,
                headers={"X-Webhook-Secret": "guess"},
            )

        assert response.status_code == 401

    def test_valid_secret(self, client, pipeline, event_payload, registered):
        pipeline.register.return_value = RegistrationResult(skills=[registered])
        with patch("skill_registration.api.events.settings") as mock_settings:
            mock_settings.WEBHOOK_SECRET = "hook-secret"
            response = client.post(
                "/api/events/register-skill",
                json=event_payload,
                headers={"X-Webhook-Secret": "hook-secret"},
            )

        assert response.status_code == 200


def test_pipeline_is_closed_after_the_request():
    request = MagicMock()
    with patch("skill_registration.api.events.RegistrationPipeline") as mock_pipeline:
        dependency = get_pipeline(request)
        pipeline = next(dependency)
        assert pipeline is mock_pipeline.return_value
        pipeline.close.assert_not_called()

        with pytest.raises(StopIteration):
            next(dependency)

    mock_pipeline.assert_called_once_with(cache=request.app.state.artifact_cache)
    pipeline.close.assert_called_once()

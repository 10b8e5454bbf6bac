"""
Event intake endpoints.

The event delivery framework POSTs one registration event per new image
build. The pipeline runs synchronously in FastAPI's threadpool; failures
surface as a single failed status through the RegistrationError handler in
main.py.
"""
import logging
import secrets
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from skill_registration.core.config import settings
from skill_registration.schemas.events import RegisterSkillEvent
from skill_registration.services.cache import create_artifact_cache
from skill_registration.services.registration_pipeline import RegistrationPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisteredSkill(BaseModel):
    namespace: str
    name: str
    version: str
    image: Optional[str] = None


class RegistrationResponse(BaseModel):
    status: str
    message: str
    skills: List[RegisteredSkill] = []
    tags_created: List[str] = []


def get_pipeline(request: Request) -> Iterator[RegistrationPipeline]:
    # The cache is created at startup and shared by every invocation of this process
    cache = getattr(request.app.state, "artifact_cache", None)
    if cache is None:
        cache = request.app.state.artifact_cache = create_artifact_cache()
    pipeline = RegistrationPipeline(cache=cache)
    try:
        yield pipeline
    finally:
        pipeline.close()


def verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(default=None, alias="X-Webhook-Secret"),
) -> None:
    """Require the shared secret when one is configured."""
    if not settings.WEBHOOK_SECRET:
        return
    if not x_webhook_secret or not secrets.compare_digest(x_webhook_secret, settings.WEBHOOK_SECRET):
        logger.warning("Rejected registration event with invalid webhook secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


@router.post(
    "/register-skill",
    response_model=RegistrationResponse,
    dependencies=[Depends(verify_webhook_secret)],
)
def register_skill(
    event: RegisterSkillEvent,
    pipeline: RegistrationPipeline = Depends(get_pipeline),
) -> RegistrationResponse:
    """Register the skill(s) built into a new image."""
    result = pipeline.register(event)
    return RegistrationResponse(
        status="success",
        message=result.message,
        skills=[
            RegisteredSkill(
                namespace=s.namespace,
                name=s.name,
                version=s.version,
                image=s.artifacts.docker[0].image if s.artifacts.docker else None,
            )
            for s in result.skills
        ],
        tags_created=result.tags_created,
    )

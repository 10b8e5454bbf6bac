import json
import logging
import sys
import os

# Add current directory to path so we can import skill_registration
sys.path.append(os.getcwd())

from skill_registration.core.exceptions import RegistrationError
from skill_registration.schemas.events import RegisterSkillEvent
from skill_registration.services.cache import create_artifact_cache
from skill_registration.services.registration_pipeline import RegistrationPipeline

def main():
    if len(sys.argv) != 2:
        print("Usage: python scripts/register_event.py <event.json>")
        sys.exit(2)

    logging.basicConfig(level=logging.INFO)
    with open(sys.argv[1]) as f:
        event = RegisterSkillEvent.model_validate(json.load(f))

    print(f"Registering image {event.image.full_name} for {event.commit.owner}/{event.commit.repo.name}...")
    pipeline = RegistrationPipeline(cache=create_artifact_cache())
    try:
        result = pipeline.register(event)
    except RegistrationError as e:
        print(f"FAILED: {e}")
        sys.exit(1)
    finally:
        pipeline.close()

    print(result.message)
    for skill in result.skills:
        image = skill.artifacts.docker[0].image if skill.artifacts.docker else "no artifact"
        print(f" - {skill.qualified_name}@{skill.version}: {image}")
    if result.tags_created:
        print(f"Created tags: {', '.join(result.tags_created)}")

if __name__ == "__main__":
    main()

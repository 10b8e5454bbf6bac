from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DescriptorModel(BaseModel):
    # skill.yaml and the catalog both use camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class QueryDefinition(DescriptorModel):
    name: str
    query: str
    limit: Optional[int] = None


class SchemaDefinition(DescriptorModel):
    name: str
    schema_: str = Field(alias="schema")


class DockerArtifact(DescriptorModel):
    # Additional container settings (command, env, resources, ...) pass through untouched
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True, extra="allow")

    name: str = "skill"
    image: Optional[str] = None


class SkillArtifacts(DescriptorModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True, extra="allow")

    docker: List[DockerArtifact] = []


class SkillDescriptor(DescriptorModel):
    """
    Skill metadata submitted to the catalog.

    Built from the generated defaults layered under one skill.yaml document.
    Keys the model does not know about (categories, parameters, ...) are kept
    as extras so the catalog receives the descriptor as authored.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True, extra="allow")

    namespace: str
    name: str
    version: Optional[str] = None
    author: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    long_description: Optional[str] = None
    readme: Optional[str] = None
    icon_url: Optional[str] = None
    homepage_url: Optional[str] = None
    license: Optional[str] = None
    repo_id: Optional[str] = None
    commit_sha: Optional[str] = None
    artifacts: SkillArtifacts = Field(default_factory=SkillArtifacts)
    datalog_subscriptions: List[QueryDefinition] = []
    # Glob patterns resolved into datalog_subscriptions, never sent to the catalog
    datalog_subscription_paths: List[str] = []
    schemata: List[SchemaDefinition] = []

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    def to_catalog_payload(self) -> Dict[str, Any]:
        """Serialize for the registerSkill mutation."""
        return self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"datalog_subscription_paths"},
        )

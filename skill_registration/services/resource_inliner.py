import logging
from pathlib import Path
from typing import List

from skill_registration.schemas.skill import QueryDefinition, SchemaDefinition, SkillDescriptor
from skill_registration.utils.merge import merge_by_name

logger = logging.getLogger(__name__)

SUBSCRIPTION_PATTERN = "datalog/subscription/*.edn"
SCHEMA_PATTERN = "datalog/schema/*.edn"


def glob_files(project_dir: Path, pattern: str) -> List[Path]:
    """
    Files below `project_dir` matching a relative glob, in sorted order.

    Absolute patterns and matches outside the project are ignored; a pattern
    matching nothing yields an empty list.
    """
    if not pattern or Path(pattern).is_absolute():
        logger.warning(f"Ignoring resource pattern '{pattern}'")
        return []

    root = project_dir.resolve()
    matches = []
    for path in sorted(project_dir.glob(pattern)):
        if not path.is_file():
            continue
        if not path.resolve().is_relative_to(root):
            logger.warning(f"Ignoring '{path}' outside of the project")
            continue
        matches.append(path)

    if not matches:
        logger.debug(f"No files match '{pattern}'")
    return matches


def read_queries(project_dir: Path, pattern: str) -> List[QueryDefinition]:
    return [
        QueryDefinition(name=path.stem, query=path.read_text())
        for path in glob_files(project_dir, pattern)
    ]


def read_schemata(project_dir: Path, pattern: str) -> List[SchemaDefinition]:
    return [
        SchemaDefinition(name=path.stem, schema_=path.read_text())
        for path in glob_files(project_dir, pattern)
    ]


def inline_resources(descriptor: SkillDescriptor, project_dir: Path) -> SkillDescriptor:
    """
    Embed subscription and schema files into a descriptor.

    Subscriptions accumulate by name from, in order: the default
    subscription directory, each declared datalogSubscriptionPaths pattern,
    then the subscriptions written inline in the descriptor. Schemas are read
    from the default schema directory only when none are declared inline.

    Returns:
        Updated copy of `descriptor` without datalogSubscriptionPaths
    """
    subscriptions = read_queries(project_dir, SUBSCRIPTION_PATTERN)
    for pattern in descriptor.datalog_subscription_paths:
        subscriptions = merge_by_name(subscriptions, read_queries(project_dir, pattern))
    subscriptions = merge_by_name(subscriptions, descriptor.datalog_subscriptions)

    schemata = list(descriptor.schemata)
    if not schemata:
        schemata = read_schemata(project_dir, SCHEMA_PATTERN)

    logger.info(
        f"Inlined {len(subscriptions)} subscription(s) and {len(schemata)} schema(s) "
        f"for {descriptor.qualified_name}"
    )
    return descriptor.model_copy(
        update={
            "datalog_subscriptions": subscriptions,
            "datalog_subscription_paths": [],
            "schemata": schemata,
        }
    )

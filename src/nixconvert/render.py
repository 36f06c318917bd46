# render.py
from __future__ import annotations

from typing import List

import yaml

from .errors import RenderError
from .model import ARTIFACT_PATH_ENV, Job, JobManifest, Resource
from .resources import dump


def populate_build_stage(template: Resource, job: Job) -> Resource:
    """Return a copy of a build template specialised for one job."""
    stage = template.clone()
    if template.name is not None:
        stage.name = f"{template.name} ({job.name})"
    else:
        stage.name = job.name

    if stage.environment is not None:
        stage.environment[ARTIFACT_PATH_ENV] = job.artifact_path
    else:
        stage.environment = {ARTIFACT_PATH_ENV: job.artifact_path}
    return stage


def populate_post_build_stage(template: Resource, build_stage_names: List[str]) -> Resource:
    """Return a copy of a post-build template depending on every rendered build stage."""
    stage = template.clone()
    stage.depends_on = list(template.depends_on or []) + list(build_stage_names)
    return stage


def _encode(resource: Resource) -> str:
    try:
        return dump(resource)
    except yaml.YAMLError as e:
        raise RenderError(f"cannot convert pipeline stage to yaml: {e}", resource=resource.label()) from e


def render_config(
    build_templates: List[Resource],
    post_build_templates: List[Resource],
    others: List[Resource],
    manifest: JobManifest,
) -> str:
    """
    Produce the final multi-document configuration.

    Order: pass-through resources, then one build stage per
    (buildable job x build template), then the post-build templates.
    """
    parts: List[str] = [_encode(other) for other in others]

    build_stage_names: List[str] = []
    for job in manifest.buildable():
        for template in build_templates:
            stage = populate_build_stage(template, job)
            parts.append(_encode(stage))
            build_stage_names.append(stage.name)

    for template in post_build_templates:
        parts.append(_encode(populate_post_build_stage(template, build_stage_names)))

    return "".join(parts)

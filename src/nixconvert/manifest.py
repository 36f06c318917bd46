# manifest.py
"""
Job manifest extraction from evaluation build logs.

An evaluation step prints its job table between two marker lines:

    <hydra-eval-jobs>
    {"job": {"artifactPath": "/nix/store/...drv", "dependencyPaths": [...]}}
    </hydra-eval-jobs>

Lines before the start marker are ignored, as is everything after the end
marker. The lines in between are joined with newlines and decoded as JSON.
"""
from __future__ import annotations

import json
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from .context import RequestContext
from .drone import APIError, Build, DroneClient
from .errors import ExtractError
from .model import Job, JobManifest

START_MARKER = "<hydra-eval-jobs>"
END_MARKER = "</hydra-eval-jobs>"


class UnterminatedPayloadError(ValueError):
    """The start marker was seen but the end marker never followed."""


class JobEntry(BaseModel):
    # hydra-eval-jobs itself emits drvPath/builds
    artifact_path: str = Field(validation_alias=AliasChoices("artifactPath", "drvPath"))
    dependency_paths: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("dependencyPaths", "builds"),
    )


_JOB_TABLE = TypeAdapter(Dict[str, JobEntry])


def extract_payload(messages: Iterable[str]) -> Optional[str]:
    """
    Return the text between the markers, or None if the start marker is absent.

    Raises:
        UnterminatedPayloadError: if the start marker is never closed
    """
    payload: List[str] = []
    started = False
    for message in messages:
        if not started:
            if message == START_MARKER:
                started = True
        elif message == END_MARKER:
            return "\n".join(payload)
        else:
            payload.append(message)
    if started:
        raise UnterminatedPayloadError(f"{START_MARKER} without matching {END_MARKER}")
    return None


def parse_job_table(payload: str) -> Dict[str, Job]:
    """Decode a payload into Jobs. Raises ValueError on bad JSON or shape."""
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"failed to decode hydra-eval-jobs output: {e}") from e
    try:
        entries = _JOB_TABLE.validate_python(raw)
    except ValidationError as e:
        raise ValueError(f"unexpected hydra-eval-jobs output: {e}") from e
    return {
        name: Job(name=name, artifact_path=entry.artifact_path, dependency_paths=list(entry.dependency_paths))
        for name, entry in entries.items()
    }


def collect_manifest(client: DroneClient, ctx: RequestContext, build: Build) -> JobManifest:
    """
    Read every step of every stage of a finished build and merge their jobs.

    Steps are visited in the order the server reports them. When two steps
    report the same job name, the later one wins.
    """
    manifest = JobManifest()
    producers: Dict[str, Tuple[int, int]] = {}

    for stage in build.stages:
        for step in stage.steps:
            try:
                lines = client.get_logs(ctx.repo_namespace, ctx.repo_name, build.number, stage.number, step.number)
            except APIError as e:
                raise ExtractError(
                    f"cannot get logs for step {ctx.slug}/{build.number}/{stage.number}/{step.number}: {e}",
                    build=build.number,
                    stage=stage.number,
                    step=step.number,
                ) from e

            try:
                payload = extract_payload(line.text for line in lines)
                if payload is None:
                    continue
                jobs = parse_job_table(payload)
            except ValueError as e:
                raise ExtractError(
                    f"failed to parse evaluation logs: {e}",
                    build=build.number,
                    stage=stage.number,
                    step=step.number,
                ) from e

            ctx.log.debug("stage %d step %d reported %d job(s)", stage.number, step.number, len(jobs))
            for name, job in jobs.items():
                if name in producers:
                    prev_stage, prev_step = producers[name]
                    ctx.log.warning(
                        "job %r from stage %d step %d replaces the one from stage %d step %d",
                        name, stage.number, step.number, prev_stage, prev_step,
                    )
                manifest.jobs[name] = job
                producers[name] = (stage.number, step.number)

    ctx.log.info("evaluation produced %d job(s)", len(manifest))
    return manifest

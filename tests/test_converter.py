"""End-to-end tests for the conversion orchestrator against a fake Drone API."""

from __future__ import annotations

import json
import threading

import pytest
import yaml

from nixconvert.converter import Converter
from nixconvert.drone import Stage, Step
from nixconvert.errors import EvalError, ParseError
from nixconvert.manifest import END_MARKER, START_MARKER
from nixconvert.model import ConversionRequest, Outcome

PIPELINE = """\
---
kind: pipeline
type: exec
nix-jobset: true
name: Eval jobset
commands:
  - echo <hydra-eval-jobs>
  - hydra-eval-jobs --flake .#
  - echo </hydra-eval-jobs>
environment:
  BUILDDIR: /var/lib/drone/nix-build
---
kind: pipeline
type: exec
name: Build job
nix-build: true

platform:
  os: linux
  arch: amd64

steps:
- name: build
  commands:
  - nix build -L $artifactPath
"""


def _request(config: str = PIPELINE, **overrides) -> ConversionRequest:
    fields = dict(
        original_config=config,
        repo_namespace="Mic92",
        repo_name="drone-convert-nix",
        build_ref="6ee3cf41d995a79857e0db41c47bf619e6546571",
        repo_branch="master",
        build_event="push",
        repo_config_path=".drone.yml",
    )
    fields.update(overrides)
    return ConversionRequest(**fields)


def _eval_logs(jobs: dict) -> list[str]:
    return ["+ nix run ...", START_MARKER, json.dumps(jobs), END_MARKER, "+ rm -rf gcroots"]


@pytest.fixture
def converter(drone) -> Converter:
    return Converter(drone, poll_interval=0, timeout=5)


def test_renders_one_stage_per_job(drone, converter) -> None:
    drone.statuses = ["pending", "running", "success"]
    drone.stages = [Stage(number=43, steps=[Step(number=44)])]
    drone.logs[(43, 44)] = _eval_logs({
        "job": {"artifactPath": "/store/foo.drv", "dependencyPaths": ["/store/dep.drv"]},
    })

    result = converter.convert(_request())

    assert result.outcome is Outcome.RENDERED
    assert result.job_count == 1
    assert drone.polls == 3
    assert drone.log_requests == [(43, 44)]
    docs = list(yaml.safe_load_all(result.data))
    assert len(docs) == 1
    [stage] = docs
    assert "job" in stage["name"]
    assert stage["name"] == "Build job (job)"
    assert stage["environment"] == {"artifactPath": "/store/foo.drv"}
    assert stage["platform"] == {"os": "linux", "arch": "amd64"}
    assert "nix-build" not in stage

    [created] = drone.created
    assert created["commit"] == "6ee3cf41d995a79857e0db41c47bf619e6546571"
    assert created["branch"] == "master"
    assert "Eval jobset" in created["params"]["nix_eval_jobset"]


def test_duplicate_job_uses_last_step(drone, converter) -> None:
    drone.stages = [Stage(number=1, steps=[Step(number=1), Step(number=2)])]
    drone.logs[(1, 1)] = _eval_logs({"job": {"artifactPath": "/store/old.drv", "dependencyPaths": ["/d"]}})
    drone.logs[(1, 2)] = _eval_logs({"job": {"artifactPath": "/store/new.drv", "dependencyPaths": ["/d"]}})

    result = converter.convert(_request())

    [stage] = list(yaml.safe_load_all(result.data))
    assert stage["environment"]["artifactPath"] == "/store/new.drv"


def test_passthrough_without_jobset(drone, converter) -> None:
    config = "kind: pipeline\nname: build\nnix-build: true\n"

    result = converter.convert(_request(config))

    assert result.outcome is Outcome.PASSTHROUGH
    assert result.data == config
    assert not result.changed
    assert drone.created == []


def test_passthrough_without_build(drone, converter) -> None:
    config = "kind: pipeline\nname: eval\nnix-jobset: true\n---\nkind: pipeline\nname: lint\n"

    result = converter.convert(_request(config))

    assert result.outcome is Outcome.PASSTHROUGH
    assert result.data == config
    assert drone.created == []


def test_custom_event_replays_stored_jobsets(drone, converter) -> None:
    stored = "---\nkind: pipeline\nname: Eval jobset\n"

    result = converter.convert(_request(build_event="custom", trigger_params={"nix_eval_jobset": stored}))

    assert result.outcome is Outcome.REPLAYED
    assert result.data == stored
    assert drone.created == []


def test_custom_event_without_stored_jobsets_converts(drone, converter) -> None:
    drone.logs[(1, 1)] = _eval_logs({"job": {"artifactPath": "/store/foo.drv", "dependencyPaths": ["/d"]}})

    result = converter.convert(_request(build_event="custom", trigger_params={"other": "x"}))

    assert result.outcome is Outcome.RENDERED
    assert len(drone.created) == 1


def test_parse_error_is_fatal(drone, converter) -> None:
    with pytest.raises(ParseError):
        converter.convert(_request("kind: [pipeline\n"))
    assert drone.created == []


def test_failed_evaluation_is_fatal(drone, converter) -> None:
    drone.statuses = ["running", "error"]

    with pytest.raises(EvalError) as excinfo:
        converter.convert(_request())
    assert excinfo.value.build == 42
    assert drone.log_requests == []


AMBIGUOUS_SCALARS = """\
---
kind: pipeline
name: eval
nix-jobset: true
environment:
  NIX_OPTS: off
---
kind: pipeline
name: lint
environment:
  STRICT: no
---
kind: pipeline
name: build
nix-build: true
environment:
  RETRY: on
  TIMEOUT: 1:30
  MODE: 0755
"""


def test_scalar_values_survive_conversion(drone, converter) -> None:
    drone.logs[(1, 1)] = _eval_logs({"job": {"artifactPath": "/store/a.drv", "dependencyPaths": ["/d"]}})

    result = converter.convert(_request(AMBIGUOUS_SCALARS))

    lint, build = yaml.safe_load_all(result.data)
    assert lint["environment"] == {"STRICT": "no"}
    assert build["environment"] == {
        "RETRY": "on",
        "TIMEOUT": "1:30",
        "MODE": "0755",
        "artifactPath": "/store/a.drv",
    }
    [jobset] = yaml.safe_load_all(drone.created[0]["params"]["nix_eval_jobset"])
    assert jobset["environment"] == {"NIX_OPTS": "off"}


def test_cancelled_evaluation_is_fatal(drone, converter) -> None:
    drone.statuses = ["pending"]
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(EvalError) as excinfo:
        converter.convert(_request(), cancel=cancel)

    assert "cancelled" in excinfo.value.message
    assert excinfo.value.build == 42
    assert drone.log_requests == []

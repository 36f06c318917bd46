"""Tests for the hydra-eval-jobs log protocol and manifest merging."""

from __future__ import annotations

import json

import pytest

from nixconvert.drone import Build, Stage, Step
from nixconvert.errors import ExtractError
from nixconvert.manifest import (
    END_MARKER,
    START_MARKER,
    UnterminatedPayloadError,
    collect_manifest,
    extract_payload,
    parse_job_table,
)


def _block(jobs: dict) -> list[str]:
    return [START_MARKER, json.dumps(jobs), END_MARKER]


def test_extract_payload_returns_lines_between_markers() -> None:
    lines = ["+ nix run", START_MARKER, "{", '"a": 1', "}", END_MARKER, "ignored", END_MARKER]
    assert extract_payload(lines) == '{\n"a": 1\n}'


def test_extract_payload_without_start_marker_is_none() -> None:
    assert extract_payload(["building", END_MARKER, "done"]) is None


def test_extract_payload_unterminated_raises() -> None:
    with pytest.raises(UnterminatedPayloadError):
        extract_payload([START_MARKER, "{}"])


def test_extract_payload_markers_must_match_whole_line() -> None:
    assert extract_payload([f"echo {START_MARKER}", "{}", END_MARKER]) is None


def test_parse_job_table_accepts_hydra_field_names() -> None:
    jobs = parse_job_table(json.dumps({
        "hello": {"drvPath": "/nix/store/hello.drv", "builds": ["/nix/store/dep.drv"], "system": "x86_64-linux"},
        "world": {"artifactPath": "/nix/store/world.drv", "dependencyPaths": []},
    }))

    assert jobs["hello"].artifact_path == "/nix/store/hello.drv"
    assert jobs["hello"].dependency_paths == ["/nix/store/dep.drv"]
    assert jobs["hello"].buildable
    assert jobs["world"].name == "world"
    assert not jobs["world"].buildable


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        '["a", "b"]',
        '{"job": {"dependencyPaths": []}}',
        '{"job": {"artifactPath": "/x.drv", "dependencyPaths": "oops"}}',
    ],
)
def test_parse_job_table_rejects_bad_payloads(payload: str) -> None:
    with pytest.raises(ValueError):
        parse_job_table(payload)


def test_collect_manifest_reads_every_step_in_order(drone, ctx) -> None:
    build = Build(id=1, number=42, status="success", stages=[
        Stage(number=1, steps=[Step(number=1), Step(number=2)]),
        Stage(number=2, steps=[Step(number=1)]),
    ])
    drone.logs[(1, 1)] = ["cloning..."]
    drone.logs[(1, 2)] = _block({"a": {"artifactPath": "/a.drv", "dependencyPaths": ["/dep.drv"]}})
    drone.logs[(2, 1)] = _block({"b": {"artifactPath": "/b.drv", "dependencyPaths": []}})

    manifest = collect_manifest(drone, ctx, build)

    assert drone.log_requests == [(1, 1), (1, 2), (2, 1)]
    assert sorted(j.name for j in manifest) == ["a", "b"]
    assert [j.name for j in manifest.buildable()] == ["a"]


def test_collect_manifest_last_step_wins(drone, ctx) -> None:
    build = Build(id=1, number=42, status="success", stages=[
        Stage(number=1, steps=[Step(number=1)]),
        Stage(number=2, steps=[Step(number=1)]),
    ])
    drone.logs[(1, 1)] = _block({"job": {"artifactPath": "/first.drv", "dependencyPaths": ["/d"]}})
    drone.logs[(2, 1)] = _block({"job": {"artifactPath": "/second.drv", "dependencyPaths": ["/d"]}})

    manifest = collect_manifest(drone, ctx, build)

    assert len(manifest) == 1
    assert manifest["job"].artifact_path == "/second.drv"


def test_collect_manifest_strips_line_terminators(drone, ctx) -> None:
    build = Build(id=1, number=7, status="success", stages=[Stage(number=1, steps=[Step(number=1)])])
    payload = json.dumps({"job": {"artifactPath": "/x.drv", "dependencyPaths": ["/d"]}})
    drone.logs[(1, 1)] = [START_MARKER + "\n", payload + "\n", END_MARKER + "\r\n"]

    manifest = collect_manifest(drone, ctx, build)

    assert manifest["job"].artifact_path == "/x.drv"


def test_collect_manifest_log_fetch_failure(drone, ctx, api_error) -> None:
    build = Build(id=1, number=42, status="success", stages=[Stage(number=3, steps=[Step(number=4)])])
    drone.logs[(3, 4)] = api_error

    with pytest.raises(ExtractError) as excinfo:
        collect_manifest(drone, ctx, build)

    assert (excinfo.value.build, excinfo.value.stage, excinfo.value.step) == (42, 3, 4)
    assert "Mic92/drone-convert-nix/42/3/4" in excinfo.value.message


def test_collect_manifest_unterminated_block_is_an_error(drone, ctx) -> None:
    build = Build(id=1, number=42, status="success", stages=[Stage(number=1, steps=[Step(number=2)])])
    drone.logs[(1, 2)] = [START_MARKER, "{}"]

    with pytest.raises(ExtractError) as excinfo:
        collect_manifest(drone, ctx, build)
    assert excinfo.value.step == 2


def test_collect_manifest_decode_failure_names_step(drone, ctx) -> None:
    build = Build(id=1, number=42, status="success", stages=[Stage(number=1, steps=[Step(number=5)])])
    drone.logs[(1, 5)] = [START_MARKER, "{broken", END_MARKER]

    with pytest.raises(ExtractError) as excinfo:
        collect_manifest(drone, ctx, build)
    assert excinfo.value.details == {"build": 42, "stage": 1, "step": 5}

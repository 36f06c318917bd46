# evaluation.py
from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

import yaml

from .context import RequestContext
from .drone import APIError, Build, DroneClient
from .errors import EvalError
from .model import EVAL_JOBSET_PARAM, Resource
from .resources import dump_all

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_TIMEOUT = 3600.0

StatusCallback = Callable[[Build], None]


def create_eval_build(client: DroneClient, ctx: RequestContext, jobsets: List[Resource]) -> Build:
    """Request a build that evaluates the given jobset pipelines."""
    try:
        jobset_yaml = dump_all(jobsets)
    except yaml.YAMLError as e:
        raise EvalError(f"cannot convert jobsets to yaml: {e}") from e

    try:
        build = client.create_build(
            ctx.repo_namespace,
            ctx.repo_name,
            ctx.build_ref,
            ctx.repo_branch,
            {EVAL_JOBSET_PARAM: jobset_yaml},
        )
    except APIError as e:
        raise EvalError(f"cannot create build: {e}") from e

    ctx.log.info("started evaluation build #%d", build.number)
    return build


def await_build(
    client: DroneClient,
    ctx: RequestContext,
    number: int,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    cancel: Optional[threading.Event] = None,
    on_status: Optional[StatusCallback] = None,
) -> Build:
    """
    Poll a build until it leaves pending/running.

    Args:
        client: Drone API client
        ctx: Request context
        number: Build number to watch
        poll_interval: Seconds to wait between status checks
        timeout: Seconds before giving up, or None to wait forever
        cancel: Event that aborts the wait as soon as it is set
        on_status: Called with the build after every status check

    Returns:
        The build as last reported, with its stage/step topology

    Raises:
        EvalError: If the build failed, the status query failed, the deadline
            passed, or the wait was cancelled
    """
    cancel = cancel or threading.Event()
    deadline = None if timeout is None else time.monotonic() + timeout
    last_status: Optional[str] = None

    while True:
        try:
            build = client.get_build(ctx.repo_namespace, ctx.repo_name, number)
        except APIError as e:
            raise EvalError(f"cannot get build status: {e}", build=number, status=last_status) from e

        if build.status != last_status:
            ctx.log.debug("evaluation build #%d is %s", number, build.status)
        last_status = build.status
        if on_status is not None:
            on_status(build)

        if build.succeeded:
            return build
        if not build.active:
            raise EvalError(f"evaluation failed: build {build.id}", build=number, status=build.status)

        wait = poll_interval
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise EvalError(
                    f"evaluation timed out after {timeout:g}s",
                    build=number,
                    status=last_status,
                )
            wait = min(wait, remaining)

        if cancel.wait(wait):
            raise EvalError("evaluation cancelled", build=number, status=last_status)


def trigger_and_await(
    client: DroneClient,
    ctx: RequestContext,
    jobsets: List[Resource],
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    cancel: Optional[threading.Event] = None,
    on_status: Optional[StatusCallback] = None,
) -> Build:
    """Start the evaluation build and return it once it has succeeded."""
    build = create_eval_build(client, ctx, jobsets)
    return await_build(
        client,
        ctx,
        build.number,
        poll_interval=poll_interval,
        timeout=timeout,
        cancel=cancel,
        on_status=on_status,
    )

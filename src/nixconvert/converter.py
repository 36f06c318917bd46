# converter.py
from __future__ import annotations

import threading
from typing import Optional

from .context import RequestContext
from .drone import DroneClient
from .evaluation import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, StatusCallback, trigger_and_await
from .manifest import collect_manifest
from .model import CUSTOM_EVENT, EVAL_JOBSET_PARAM, ConversionRequest, ConversionResult, Outcome
from .render import render_config
from .resources import classify, parse


class Converter:
    """Turns a pipeline configuration with nix-jobset stages into concrete build stages."""

    def __init__(
        self,
        client: DroneClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.timeout = timeout

    def convert(
        self,
        req: ConversionRequest,
        *,
        cancel: Optional[threading.Event] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> ConversionResult:
        """
        Convert one configuration.

        Raises:
            ConversionError: any parse, evaluation, extraction or render failure
        """
        ctx = RequestContext.from_request(req)
        log = ctx.log

        log.info(
            "initiated build_action=%s build_event=%s build_source=%s build_ref=%s build_target=%s build_trigger=%s",
            req.build_action, req.build_event, req.build_source,
            req.build_ref, req.build_target, req.build_trigger,
        )
        log.info("process %s", req.repo_config_path)

        # the evaluation build itself: hand back the jobsets we stored in its params
        if req.build_event == CUSTOM_EVENT and EVAL_JOBSET_PARAM in req.trigger_params:
            log.info("custom build with stored %s, returning it", EVAL_JOBSET_PARAM)
            return ConversionResult(data=req.trigger_params[EVAL_JOBSET_PARAM], outcome=Outcome.REPLAYED)

        stages = classify(parse(req.original_config))

        if not stages.jobsets:
            log.info("no pipeline found with nix-jobset flag set, skip evaluation...")
            return ConversionResult(data=req.original_config, outcome=Outcome.PASSTHROUGH)
        if not stages.builds:
            log.info("no pipeline found with nix-build flag set, skip evaluation...")
            return ConversionResult(data=req.original_config, outcome=Outcome.PASSTHROUGH)

        build = trigger_and_await(
            self.client,
            ctx,
            stages.jobsets,
            poll_interval=self.poll_interval,
            timeout=self.timeout,
            cancel=cancel,
            on_status=on_status,
        )
        manifest = collect_manifest(self.client, ctx, build)
        config = render_config(stages.builds, stages.post_builds, stages.others, manifest)

        return ConversionResult(data=config, outcome=Outcome.RENDERED, job_count=len(manifest.buildable()))

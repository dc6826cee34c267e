"""End-to-end corpus pipeline: cleanup -> rewrite -> validate.

Each step can be skipped. Cleanup and rewrite are also skipped when
their output already exists, unless ``force`` is set. A failed rewrite
is not fatal: the pipeline continues and validates whatever corpus is on
disk. A failed validation fails the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from qbank.cleanup.normalizer import run_cleanup
from qbank.config import PipelinePaths, RewriteConfig, get_api_key, has_api_key
from qbank.rewrite.client import MistralRewriteClient
from qbank.rewrite.orchestrator import RewriteBackend, run_rewrite
from qbank.validation.validator import (
    ValidationReport,
    resolve_validation_input,
    run_validation,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    """Switches for a pipeline run."""

    force: bool = False
    skip_cleanup: bool = False
    skip_rewrite: bool = False
    skip_validate: bool = False


@dataclass
class StepStatus:
    skipped: bool = False
    success: bool = False
    reason: str | None = None


@dataclass
class PipelineResult:
    """Outcome of every step plus collected error messages."""

    success: bool = False
    cleanup: StepStatus = field(default_factory=StepStatus)
    rewrite: StepStatus = field(default_factory=StepStatus)
    validate: StepStatus = field(default_factory=StepStatus)
    report: ValidationReport | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def steps(self) -> dict[str, StepStatus]:
        return {
            "cleanup": self.cleanup,
            "rewrite": self.rewrite,
            "validate": self.validate,
        }


def _default_client_factory(config: RewriteConfig) -> RewriteBackend:
    return MistralRewriteClient(api_key=get_api_key(), model=config.model)


def _skip(status: StepStatus, reason: str) -> None:
    logger.info("Skipped: %s", reason)
    status.skipped = True
    status.success = True
    status.reason = reason


def _step_cleanup(
    options: PipelineOptions, paths: PipelinePaths, result: PipelineResult
) -> bool:
    if options.skip_cleanup:
        _skip(result.cleanup, "--skip-cleanup flag")
        return True
    if paths.cleaned_file.exists() and not options.force:
        _skip(result.cleanup, f"{paths.cleaned_file.name} already exists (use --force to re-run)")
        return True

    try:
        run_cleanup(paths.raw_file, paths.cleaned_file)
    except (OSError, ValueError, KeyError) as e:
        result.errors.append(f"Cleanup failed: {e}")
        return False
    result.cleanup.success = True
    return True


def _step_rewrite(
    options: PipelineOptions,
    paths: PipelinePaths,
    config: RewriteConfig,
    client_factory: Callable[[RewriteConfig], RewriteBackend],
    credential_check: Callable[[], bool],
    result: PipelineResult,
) -> None:
    if options.skip_rewrite:
        _skip(result.rewrite, "--skip-rewrite flag")
        return
    if not credential_check():
        _skip(result.rewrite, "no API key configured (rewriting requires a key)")
        return
    if paths.rewritten_file.exists() and not options.force:
        _skip(result.rewrite, f"{paths.rewritten_file.name} already exists (use --force to re-run)")
        return

    try:
        client = client_factory(config)
        asyncio.run(run_rewrite(paths, client, config))
    except Exception as e:
        # Rewriting is optional; validation runs on the canonical data
        logger.warning("Rewriting failed (will use cleaned data): %s", e)
        result.rewrite.success = False
        result.rewrite.reason = str(e)
        return
    result.rewrite.success = True


def _step_validate(
    options: PipelineOptions, paths: PipelinePaths, result: PipelineResult
) -> bool:
    if options.skip_validate:
        _skip(result.validate, "--skip-validate flag")
        return True

    path = resolve_validation_input(paths.cleaned_file, paths.rewritten_file)
    try:
        report = run_validation(path)
    except (OSError, ValueError) as e:
        result.errors.append(f"Validation failed: {e}")
        return False

    result.report = report
    result.validate.success = True
    if not report.valid:
        result.errors.append(f"Validation failed with {report.error_count} errors")
        return False
    return True


def run_pipeline(
    options: PipelineOptions | None = None,
    paths: PipelinePaths | None = None,
    config: RewriteConfig | None = None,
    client_factory: Callable[[RewriteConfig], RewriteBackend] | None = None,
    credential_check: Callable[[], bool] | None = None,
) -> PipelineResult:
    """Run cleanup, rewrite and validation in order.

    Args:
        options: Skip/force switches.
        paths: Artifact locations.
        config: Rewrite settings.
        client_factory: Builds the rewriting backend; defaults to Mistral
            with the configured credential.
        credential_check: Returns whether a backend credential exists;
            the rewrite step is skipped when it returns False.

    Returns:
        PipelineResult with per-step status; ``success`` is True only
        when every non-skipped fatal step succeeded.
    """
    options = options or PipelineOptions()
    paths = paths or PipelinePaths()
    config = config or RewriteConfig()
    client_factory = client_factory or _default_client_factory
    credential_check = credential_check or has_api_key

    result = PipelineResult()

    logger.info("[1/3] Data cleanup")
    if not _step_cleanup(options, paths, result):
        return result

    logger.info("[2/3] LLM rewriting")
    _step_rewrite(options, paths, config, client_factory, credential_check, result)

    logger.info("[3/3] Data validation")
    if not _step_validate(options, paths, result):
        return result

    result.success = True
    return result

"""Configuration loading for the corpus pipeline."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

import keyring
from keyring.errors import KeyringError

SERVICE_NAME = "qbank-mistral"
KEY_NAME = "api_key"
API_KEY_ENV = "MISTRAL_API_KEY"


def get_api_key() -> str:
    """Get the rewriting backend API key: system keyring first, then env var.

    Returns:
        API key string.

    Raises:
        RuntimeError: If no key found anywhere, with actionable instructions.
    """
    try:
        api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    except KeyringError:
        # No usable keyring backend (e.g. headless CI)
        api_key = None
    if api_key:
        return api_key

    api_key = os.environ.get(API_KEY_ENV)
    if api_key:
        return api_key

    raise RuntimeError(
        "Mistral API key not found.\n"
        "Set it with: qbank config set-api-key YOUR_KEY\n"
        f"Or: export {API_KEY_ENV}=your-key"
    )


def has_api_key() -> bool:
    """Return True when a backend credential is configured."""
    try:
        get_api_key()
    except RuntimeError:
        return False
    return True


@dataclass
class PipelinePaths:
    """Locations of every artifact the pipeline reads or writes."""

    data_dir: Path = field(default_factory=lambda: Path("data"))
    raw_file: Path = field(default_factory=lambda: Path("data_final.json"))

    def __post_init__(self) -> None:
        """Ensure paths are Path objects."""
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)
        if isinstance(self.raw_file, str):
            self.raw_file = Path(self.raw_file)

    @property
    def cleaned_file(self) -> Path:
        return self.data_dir / "cleaned.json"

    @property
    def rewritten_file(self) -> Path:
        return self.data_dir / "rephrased.json"

    @property
    def checkpoint_file(self) -> Path:
        return self.data_dir / "progress.json"


@dataclass
class RewriteConfig:
    """Settings for the rewrite stage.

    ``batch_size`` is the checkpoint flush granularity, not a concurrency
    unit; ``max_concurrent`` bounds in-flight backend calls for the whole
    run.
    """

    batch_size: int = 10
    max_concurrent: int = 2
    rate_limit_rpm: int = 60
    max_retries: int = 2
    limit: int | None = None
    only_export_rewritten: bool = False
    model: str = "mistral-large-latest"
    temperature: float = 0.3
    max_tokens: int = 1024

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_concurrent < 1:
            raise ValueError(
                f"max_concurrent must be >= 1, got {self.max_concurrent}"
            )
        if self.rate_limit_rpm < 1:
            raise ValueError(
                f"rate_limit_rpm must be >= 1, got {self.rate_limit_rpm}"
            )
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.limit is not None and self.limit < 1:
            self.limit = None


def _env_overrides() -> dict[str, object]:
    overrides: dict[str, object] = {}
    if os.environ.get("REPHRASE_BATCH_SIZE"):
        overrides["batch_size"] = int(os.environ["REPHRASE_BATCH_SIZE"])
    if os.environ.get("REPHRASE_CONCURRENCY"):
        overrides["max_concurrent"] = int(os.environ["REPHRASE_CONCURRENCY"])
    if os.environ.get("REPHRASE_LIMIT"):
        overrides["limit"] = int(os.environ["REPHRASE_LIMIT"])
    if "REPHRASE_ONLY_EXPORT_REPHRASED" in os.environ:
        overrides["only_export_rewritten"] = (
            os.environ["REPHRASE_ONLY_EXPORT_REPHRASED"] == "true"
        )
    return overrides


def load_rewrite_config(config_path: Path | None = None) -> RewriteConfig:
    """Load rewrite configuration from JSON, falling back to defaults.

    Reads from ``config/rewrite_config.json`` when *config_path* is ``None``.
    If the file does not exist, defaults are used. ``REPHRASE_*``
    environment variables are applied on top of the file values.

    Args:
        config_path: Optional explicit path to rewrite_config.json.

    Returns:
        RewriteConfig populated from file + environment overrides.
    """
    if config_path is None:
        config_path = Path("config/rewrite_config.json")

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    # Only recognised fields are honoured
    field_names = set(RewriteConfig.__dataclass_fields__)
    kwargs = {k: v for k, v in data.items() if k in field_names}
    kwargs.update(_env_overrides())

    return RewriteConfig(**kwargs)

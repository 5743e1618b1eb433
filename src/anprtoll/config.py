"""Engine configuration for anprtoll."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from anprtoll._constants import DEFAULT_FLAT_RATE, RECOGNIZER_URL
from anprtoll.exceptions import TollConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TollConfig:
    """Engine configuration.

    Parameters
    ----------
    cooldown_window : float
        Seconds during which a repeated sighting of the same plate in the
        same zone is treated as a duplicate frame of one physical pass.
    exit_threshold : float
        Seconds of silence after which an in-progress trip is considered
        exited and handed to the exit resolver.  Defaults to 10 minutes.
    sweep_interval : float
        Seconds between two reconciliation sweep ticks.
    sweep_concurrency : int
        Maximum number of trips resolved concurrently within one sweep.
    sweep_enabled : bool
        Start the periodic sweep when the engine starts.
    default_flat_rate : float
        Toll charged by zones that do not declare a ``flat_rate``.
    recognizer_url : str
        Plate Recognizer ``plate-reader`` endpoint.
    recognizer_token : str or None
        API token for the plate recognition service.
    recognition_timeout : float
        Upper bound in seconds for one plate recognition call.
    registry_timeout : float
        Upper bound in seconds for one vehicle registry lookup.
    """

    cooldown_window: float = 3.0
    exit_threshold: float = 10 * 60.0
    sweep_interval: float = 60.0
    sweep_concurrency: int = 8
    sweep_enabled: bool = True
    default_flat_rate: float = DEFAULT_FLAT_RATE
    recognizer_url: str = RECOGNIZER_URL
    recognizer_token: str | None = None
    recognition_timeout: float = 10.0
    registry_timeout: float = 5.0

    def validate(self) -> TollConfig:
        """Check value ranges, raising :class:`TollConfigError` on the first problem."""
        positive = {
            "cooldown_window": self.cooldown_window,
            "exit_threshold": self.exit_threshold,
            "sweep_interval": self.sweep_interval,
            "recognition_timeout": self.recognition_timeout,
            "registry_timeout": self.registry_timeout,
        }
        for name, value in positive.items():
            if value <= 0:
                raise TollConfigError(f"{name} must be positive, got {value}")
        if self.sweep_concurrency < 1:
            raise TollConfigError(f"sweep_concurrency must be at least 1, got {self.sweep_concurrency}")
        if self.default_flat_rate < 0:
            raise TollConfigError(f"default_flat_rate must not be negative, got {self.default_flat_rate}")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> TollConfig:
        """Create configuration from environment variables.

        Reads optional ``TOLL_*`` variables.  Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TollConfig
            Populated and validated configuration.

        Raises
        ------
        TollConfigError
            If a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_FLOAT_MAP = {
            "TOLL_COOLDOWN_WINDOW": "cooldown_window",
            "TOLL_EXIT_THRESHOLD": "exit_threshold",
            "TOLL_SWEEP_INTERVAL": "sweep_interval",
            "TOLL_DEFAULT_FLAT_RATE": "default_flat_rate",
            "TOLL_RECOGNITION_TIMEOUT": "recognition_timeout",
            "TOLL_REGISTRY_TIMEOUT": "registry_timeout",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise TollConfigError(f"{env_key} must be a number, got {val!r}") from exc

        concurrency_env = env.get("TOLL_SWEEP_CONCURRENCY")
        if concurrency_env is not None and "sweep_concurrency" not in overrides:
            try:
                config_kwargs["sweep_concurrency"] = int(concurrency_env)
            except ValueError as exc:
                raise TollConfigError(f"TOLL_SWEEP_CONCURRENCY must be an integer, got {concurrency_env!r}") from exc

        if "sweep_enabled" not in overrides:
            config_kwargs["sweep_enabled"] = _env_bool(env.get("TOLL_SWEEP_ENABLED"), True)

        url_env = env.get("TOLL_RECOGNIZER_URL")
        if url_env:
            config_kwargs["recognizer_url"] = url_env

        # Same variable name the camera backend has always used.
        token_env = env.get("PLATE_RECOGNIZER_API_KEY") or env.get("TOLL_RECOGNIZER_TOKEN")
        if token_env:
            config_kwargs["recognizer_token"] = token_env

        config_kwargs.update(overrides)

        return cls(**config_kwargs).validate()

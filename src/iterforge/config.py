from pathlib import Path
from typing import Any, Optional

import yaml

from .criteria import CriteriaMode, CriterionDefinition
from .errors import ConfigError
from .state.models import (
    AutoCheckpointConfig,
    BudgetConfig,
    CheckpointSettings,
    CriteriaConfig,
    IterationState,
    StuckDetectionConfig,
    TaskState,
)

DEFAULT_CONFIG_FILE = "forge.yaml"

DEFAULT_PATHS = {
    "state_file": ".forge/forge-state.json",
    "checkpoints_dir": ".forge/checkpoints",
    "log_file": ".forge/forge.log",
}


class Config:
    """
    Configuration for a forge task, read from a YAML file.

    A missing file yields the built-in defaults.
    """

    def __init__(self, config_path: Optional[str] = DEFAULT_CONFIG_FILE):
        self.config_path = config_path
        self.config = self.load_config()

    def load_config(self) -> dict:
        """
        Loads the configuration from a YAML file.

        Returns:
            A dictionary containing the configuration.

        Raises:
            ConfigError: If the file is not valid YAML or not a mapping.
        """
        if not self.config_path or not Path(self.config_path).exists():
            return {}

        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping")
        return data

    def get(self, key: str, default=None):
        """Look up a dotted key such as ``checkpoints.auto.keep``.

        A key left empty in the YAML (``keep:``) counts as missing. Keys
        under ``paths.`` fall back to DEFAULT_PATHS before ``default``.
        """
        section, _, name = key.partition(".")
        if section == "paths" and name in DEFAULT_PATHS and default is None:
            default = DEFAULT_PATHS[name]

        value = self.config
        for k in key.split("."):
            if not isinstance(value, dict) or value.get(k) is None:
                return default
            value = value[k]
        return value

    def path(self, name: str) -> str:
        """Configured path for state_file, checkpoints_dir or log_file."""
        return str(self.get(f"paths.{name}", DEFAULT_PATHS[name]))

    def build_state(
        self,
        prompt: str,
        name: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> TaskState:
        """Create a fresh TaskState from defaults overlaid with this config.

        Raises:
            ConfigError: If any configured value is malformed.
        """
        state = TaskState.create(prompt, name=name, task_id=task_id)
        state.iteration = IterationState(max=self._positive_int("iteration.max", 30))
        state.criteria = self._criteria()
        state.budget = BudgetConfig(
            max_duration=self._optional_number("budget.maxDuration"),
            max_tokens=self._optional_number("budget.maxTokens", integer=True),
        )
        state.checkpoints = CheckpointSettings(
            auto=AutoCheckpointConfig(
                enabled=self._bool("checkpoints.auto.enabled", True),
                interval=self._positive_int("checkpoints.auto.interval", 10),
                keep=self._positive_int("checkpoints.auto.keep", 3),
            )
        )
        state.stuck_detection = StuckDetectionConfig(
            enabled=self._bool("stuckDetection.enabled", True),
            same_output_threshold=self._positive_int("stuckDetection.sameOutputThreshold", 3),
            no_progress_threshold=self._positive_int("stuckDetection.noProgressThreshold", 5),
            strategy=self._strategy(),
        )
        return state

    def _criteria(self) -> CriteriaConfig:
        mode = self.get("criteria.mode", "all")
        try:
            criteria_mode = CriteriaMode(mode)
        except ValueError as e:
            raise ConfigError(f"criteria.mode must be all, any or weighted, got {mode!r}") from e

        items = self.get("criteria.items", []) or []
        if not isinstance(items, list):
            raise ConfigError("criteria.items must be a list")
        try:
            definitions = [CriterionDefinition.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid criterion definition: {e}") from e

        score = self.get("criteria.requiredScore", 0.8)
        if not isinstance(score, (int, float)) or not 0 <= score <= 1:
            raise ConfigError(f"criteria.requiredScore must be between 0 and 1, got {score!r}")

        return CriteriaConfig(mode=criteria_mode, required_score=float(score), items=definitions)

    def _strategy(self) -> str:
        # Unknown names are allowed and degrade at recovery time; non-strings are not
        strategy = self.get("stuckDetection.strategy", "retry-variation")
        if not isinstance(strategy, str) or not strategy:
            raise ConfigError(f"stuckDetection.strategy must be a name, got {strategy!r}")
        return strategy

    def _positive_int(self, key: str, default: int) -> int:
        value = self.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(f"{key} must be a positive integer, got {value!r}")
        return value

    def _bool(self, key: str, default: bool) -> bool:
        value = self.get(key, default)
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false, got {value!r}")
        return value

    def _optional_number(self, key: str, integer: bool = False) -> Any:
        value = self.get(key)
        if value is None:
            return None
        allowed = (int,) if integer else (int, float)
        if isinstance(value, bool) or not isinstance(value, allowed) or value <= 0:
            raise ConfigError(f"{key} must be a positive number or null, got {value!r}")
        return value

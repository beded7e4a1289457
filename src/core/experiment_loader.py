"""Experiment loader for experiment YAML files.

Experiment content (levels, questions, branching rules) is read-only
configuration. Each file under config/experiments/ defines one experiment.
Experiments are cached after first load.
"""

from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml

from src.core.config import settings
from src.core.exceptions import ConfigurationError, ExperimentNotFoundError
from src.domain.models.experiment import (
    BranchingRule,
    Experiment,
    ExperimentLevel,
    Question,
)

log = structlog.get_logger(__name__)

def default_experiments_dir() -> Path:
    return settings.config_dir / "experiments"

# Keyed by (directory, experiment id); content does not change at runtime
_cache: Dict[tuple, Experiment] = {}


def _parse_level(experiment_id: str, data: dict) -> ExperimentLevel:
    level_number = data["level_number"]
    return ExperimentLevel(
        id=data.get("id") or f"{experiment_id}-level-{level_number}",
        level_number=level_number,
        video_url=data["video_url"],
        background_video_url=data.get("background_video_url"),
        completion_video_url=data.get("completion_video_url"),
        post_submission_video_url=data.get("post_submission_video_url"),
        video_thumbnail=data.get("video_thumbnail"),
        questions=[Question(**q) for q in data.get("questions", [])],
        branching_rules=[
            BranchingRule(**rule) for rule in data.get("branching_rules", [])
        ],
    )


def load_experiment(
    experiment_id: str, experiments_dir: Optional[Path] = None
) -> Experiment:
    """Load experiment configuration from YAML file.

    Args:
        experiment_id: Experiment identifier (file stem)
        experiments_dir: Override config/experiments/ path (for testing)

    Returns:
        Validated Experiment with its levels

    Raises:
        ExperimentNotFoundError: No YAML file for this id
        ConfigurationError: File exists but is malformed
    """
    experiments_dir = experiments_dir or default_experiments_dir()
    key = (str(experiments_dir), experiment_id)
    if key in _cache:
        return _cache[key]

    path = experiments_dir / f"{experiment_id}.yaml"
    if path.parent != experiments_dir or not path.exists():
        raise ExperimentNotFoundError(f"Experiment {experiment_id} not found")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Experiment file {path.name} must be a mapping")

    try:
        experiment = Experiment(
            id=data.get("id", experiment_id),
            title=data["title"],
            description=data.get("description"),
            total_levels=data.get("total_levels", 5),
            is_active=data.get("is_active", True),
            levels=[
                _parse_level(experiment_id, level) for level in data.get("levels", [])
            ],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid experiment file {path.name}: {e}"
        ) from e

    _cache[key] = experiment
    log.info(
        "experiment_loaded",
        experiment_id=experiment.id,
        total_levels=experiment.total_levels,
        level_count=len(experiment.levels),
    )
    return experiment


def list_experiments(experiments_dir: Optional[Path] = None) -> List[Experiment]:
    """Load every experiment in the directory, ordered by id."""
    experiments_dir = experiments_dir or default_experiments_dir()
    if not experiments_dir.exists():
        return []
    return [
        load_experiment(path.stem, experiments_dir)
        for path in sorted(experiments_dir.glob("*.yaml"))
    ]


def clear_cache() -> None:
    _cache.clear()


class YamlExperimentCatalog:
    """ExperimentCatalog backed by the YAML loader."""

    def __init__(
        self,
        experiments_dir: Optional[Path] = None,
        active_experiment_id: Optional[str] = None,
    ):
        self.experiments_dir = experiments_dir or default_experiments_dir()
        self.active_experiment_id = active_experiment_id

    async def get(self, experiment_id: str) -> Experiment:
        return load_experiment(experiment_id, self.experiments_dir)

    async def get_active(self) -> Experiment:
        if self.active_experiment_id:
            return load_experiment(self.active_experiment_id, self.experiments_dir)
        for experiment in list_experiments(self.experiments_dir):
            if experiment.is_active:
                return experiment
        raise ExperimentNotFoundError("No active experiment found")

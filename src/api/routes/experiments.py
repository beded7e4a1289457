"""
Experiment API routes.

Read-only access to the experiment content loaded from config/experiments.
"""

from fastapi import APIRouter

from src.api.dependencies import ExperimentCatalogDep
from src.api.schemas import ExperimentResponse, LevelListResponse, LevelSchema
from src.domain.models.experiment import Experiment

router = APIRouter(prefix="/experiments", tags=["experiments"])


def _to_response(experiment: Experiment) -> ExperimentResponse:
    return ExperimentResponse.model_validate(experiment.model_dump())


@router.get("/active", response_model=ExperimentResponse)
async def get_active_experiment(experiments: ExperimentCatalogDep):
    """Get the experiment new sessions start by default."""
    return _to_response(await experiments.get_active())


@router.get("/{experiment_id}", response_model=ExperimentResponse)
async def get_experiment(experiment_id: str, experiments: ExperimentCatalogDep):
    return _to_response(await experiments.get(experiment_id))


@router.get("/{experiment_id}/levels", response_model=LevelListResponse)
async def list_levels(experiment_id: str, experiments: ExperimentCatalogDep):
    """List an experiment's levels in level order."""
    experiment = await experiments.get(experiment_id)
    levels = sorted(experiment.levels, key=lambda level: level.level_number)
    return LevelListResponse(
        experiment_id=experiment.id,
        levels=[LevelSchema.model_validate(level.model_dump()) for level in levels],
        total=len(levels),
    )

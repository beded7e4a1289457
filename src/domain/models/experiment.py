"""Experiment content models.

Experiments are read-only configuration loaded from YAML
(see src.core.experiment_loader). Each level carries its videos, the
questions asked during the chat phase and the branching rules evaluated
when the level completes.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class BranchingRule(BaseModel):
    """Maps a condition to the next content path.

    Condition grammar:
        - "default": always matches
        - "<question_id>:<expected_value>": matches a response to question_id
          whose value equals expected_value exactly
    """

    condition: str
    target_path: str
    next_level_id: Optional[str] = None

    model_config = {"frozen": True}


class Question(BaseModel):
    id: str
    type: str = "text"  # text, multiple_choice, scale, media_upload
    title: str = ""
    text: str = ""
    required: bool = False
    options: List[str] = Field(default_factory=list)
    allowed_media_types: List[str] = Field(default_factory=list)


class ExperimentLevel(BaseModel):
    """One level of an experiment (video + chat questions)."""

    id: str
    level_number: int = Field(ge=1)
    video_url: str
    background_video_url: Optional[str] = None
    completion_video_url: Optional[str] = None
    post_submission_video_url: Optional[str] = None
    video_thumbnail: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)
    branching_rules: List[BranchingRule] = Field(default_factory=list)


class Experiment(BaseModel):
    """Top-level experiment definition."""

    id: str
    title: str
    description: Optional[str] = None
    total_levels: int = Field(default=5, ge=1)
    is_active: bool = True
    levels: List[ExperimentLevel] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_level_numbers(self) -> "Experiment":
        numbers = [level.level_number for level in self.levels]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"Experiment {self.id} has duplicate level numbers")
        return self

    def get_level(self, level_number: int) -> Optional[ExperimentLevel]:
        for level in self.levels:
            if level.level_number == level_number:
                return level
        return None

"""Request bodies."""

from pydantic import BaseModel, Field


class AcceptanceCriterionBody(BaseModel):
    ac_id: str = Field(min_length=1)
    text: str = ""


class StoryBody(BaseModel):
    project_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    acceptance_criteria: list[AcceptanceCriterionBody] = []


class TaskBody(BaseModel):
    story_id: str = Field(min_length=1)
    title: str = ""
    description: str = ""
    acceptance_criteria_refs: list[str] = []
    estimated_hours: float | None = Field(default=None, ge=0)


class SuggestBody(BaseModel):
    use_repo_context: bool = True


class RepoConfigBody(BaseModel):
    repo_url: str = Field(min_length=1)


class GivenWhenThenBody(BaseModel):
    ac_id: str = Field(min_length=1)
    given: str = Field(min_length=1)
    when: str = Field(min_length=1)
    then: str = Field(min_length=1)


class CriteriaBody(BaseModel):
    criteria: list[GivenWhenThenBody] = Field(min_length=1)


class RefsBody(BaseModel):
    refs: list[str] = []

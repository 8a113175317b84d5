from pydantic import BaseModel, Field, model_validator


class CriterionScore(BaseModel):
    score: float = Field(ge=0)
    max: float = Field(gt=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "CriterionScore":
        if self.score > self.max:
            raise ValueError("score cannot exceed the criterion maximum")
        return self


class CriterionMarks(BaseModel):
    criterion_scores: dict[str, CriterionScore] = Field(default_factory=dict)
    total: float = 0

    @model_validator(mode="after")
    def compute_total(self) -> "CriterionMarks":
        self.total = sum(item.score for item in self.criterion_scores.values())
        return self


class ReviewMarkUpdate(BaseModel):
    marks: float | None = Field(default=None, ge=0, le=100)
    criterion_marks: CriterionMarks | None = None
    is_absent: bool | None = None


class ReviewMarkOut(BaseModel):
    id: str
    review_id: str
    student_id: str
    marks: float
    criterion_marks: CriterionMarks
    is_absent: bool

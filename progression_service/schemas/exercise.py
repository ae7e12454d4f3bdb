from pydantic import BaseModel, Field


class ExerciseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    weight_increment: float = Field(default=5.0, gt=0, description="Load added after a fully logged week")


class ExerciseResponse(BaseModel):
    id: int
    name: str
    weight_increment: float

    class Config:
        from_attributes = True

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ConflictError
from ..models import Exercise
from ..schemas.exercise import ExerciseCreate, ExerciseResponse

logger = structlog.get_logger(__name__)


class ExerciseService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_exercise(self, data: ExerciseCreate) -> ExerciseResponse:
        name = data.name.strip()
        existing = await self.db.execute(select(Exercise.id).where(Exercise.name == name))
        if existing.scalars().first() is not None:
            raise ConflictError(f"Exercise '{name}' already exists")
        exercise = Exercise(name=name, weight_increment=data.weight_increment)
        self.db.add(exercise)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("exercise_created", exercise_id=exercise.id, name=name)
        return ExerciseResponse.model_validate(exercise)

    async def list_exercises(self) -> list[ExerciseResponse]:
        result = await self.db.execute(select(Exercise).order_by(Exercise.name.asc()))
        return [ExerciseResponse.model_validate(e) for e in result.scalars().all()]

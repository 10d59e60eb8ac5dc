from pydantic import BaseModel, field_validator
from typing import Optional


class TaskCompletion(BaseModel):
    task_id: Optional[str] = None
    completed: bool = True
    model_config = {"extra": "ignore"}

    @field_validator("task_id")
    @classmethod
    def validate_task_id(cls, v):
        if v is not None and len(v) > 200:
            raise ValueError("task_id too long")
        return v if v else None

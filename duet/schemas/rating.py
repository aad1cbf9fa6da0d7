from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class Verdict(str, Enum):
    YES = "yes"
    NO = "no"


class Rating(BaseModel):
    model_config = ConfigDict(frozen=True)

    pair_id: str
    verdict: Verdict
    timestamp: int


class RatingCreate(BaseModel):
    """Either ``pair_id`` or both candidate ids identify the rated couple."""

    verdict: Verdict
    pair_id: Optional[str] = None
    first_id: Optional[str] = None
    second_id: Optional[str] = None

    @model_validator(mode="after")
    def _pair_must_be_identified(self) -> "RatingCreate":
        if self.pair_id is None and not (self.first_id and self.second_id):
            raise ValueError("Provide pair_id or both first_id and second_id")
        return self

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Gender(str, Enum):
    MAN = "Man"
    WOMAN = "Woman"


class Candidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    age: int
    photo_ref: str
    bio: str
    gender: Gender


class Couple(BaseModel):
    pair_id: str
    first: Candidate
    second: Candidate

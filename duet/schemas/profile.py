from typing import Optional

from pydantic import BaseModel, Field, field_validator

from duet.schemas.candidate import Gender

# Display strings written by the profile form before preferences were stored
# as plain genders.
_PREFERENCE_ALIASES = {
    "looking for a man": Gender.MAN.value,
    "looking for a woman": Gender.WOMAN.value,
}


class Profile(BaseModel):
    name: str = ""
    gender: Optional[Gender] = None
    preference: Optional[Gender] = None
    photo_ref: str = ""
    summary: str = ""

    @field_validator("gender", "preference", mode="before")
    @classmethod
    def _normalise_gender(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return _PREFERENCE_ALIASES.get(v.lower(), v)
        return v

    @property
    def is_complete(self) -> bool:
        return bool(self.name.strip())


class CurrentUser(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""
    email: str = ""
    created_at: int = 0


class SessionCreate(BaseModel):
    user_id: str = Field(min_length=1)
    name: str = ""
    email: str = ""

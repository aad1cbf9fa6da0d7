from pydantic import BaseModel

from duet.schemas.candidate import Candidate


class Match(BaseModel):
    """A ranked candidate.

    ``score`` is the raw ranking score (ratings plus jitter); ``percentage``
    is the clamped value shown to the user and never used for ordering.
    """

    candidate: Candidate
    score: int
    mutual_count: int
    percentage: int

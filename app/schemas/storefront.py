from typing import Dict
from pydantic import BaseModel

class MatchRequest(BaseModel):
    selection: Dict[int, int] = {}

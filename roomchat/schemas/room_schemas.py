# roomchat/schemas/room_schemas.py
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_private: bool = Field(..., alias="isPrivate")

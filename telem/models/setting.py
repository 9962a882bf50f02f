from pydantic import Field
from typing import Optional
from datetime import datetime

from telem.models.base import ApiModel


class SettingUpsert(ApiModel):
    value: str = Field(..., min_length=1)
    description: Optional[str] = None


class SettingResponse(ApiModel):
    key: str
    value: str
    description: Optional[str]
    updated_at: datetime

from datetime import datetime
from typing import Any, Mapping, Optional
from pydantic import BaseModel, ConfigDict

class TimeStampedModel(BaseModel):
    """Base model with timestamp fields"""
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]):
        """Build the model from a database row"""
        return cls.model_validate(dict(record))

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BillFrequency(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class BillCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    amount: float = Field(ge=0)
    frequency: BillFrequency = BillFrequency.monthly
    category: str = "Other"
    next_due: Optional[datetime] = None
    is_active: bool = True
    color_name: str = "blue"


class BillUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount: Optional[float] = Field(default=None, ge=0)
    frequency: Optional[BillFrequency] = None
    category: Optional[str] = None
    next_due: Optional[datetime] = None
    is_active: Optional[bool] = None
    color_name: Optional[str] = None


class BillPublic(BaseModel):
    id: str
    name: str
    amount: float
    frequency: BillFrequency
    category: str
    next_due: Optional[str] = None
    is_active: bool
    color_name: str
    monthly_equivalent: float

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RuleField(str, Enum):
    note = "note"
    category = "category"


class RuleMatchType(str, Enum):
    contains = "contains"
    regex = "regex"


class RuleWhen(BaseModel):
    field: RuleField
    type: RuleMatchType
    value: str = Field(min_length=1)


class RuleSet(BaseModel):
    category: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def cap_tags(cls, tags):
        if tags is None:
            return None
        return [t for t in tags if t.strip()][:10]


class RuleUpsert(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=120)
    order: Optional[int] = None
    enabled: bool = True
    when: RuleWhen
    set: RuleSet = Field(default_factory=RuleSet)

from typing import Any, List

from pydantic import BaseModel, Field


class BudgetItem(BaseModel):
    category: Any = None
    monthly: Any = None


class BudgetsUpsert(BaseModel):
    budgets: List[BudgetItem] = Field(default_factory=list)


class BudgetPublic(BaseModel):
    id: str
    category: str
    monthly: float


class BudgetStatus(BaseModel):
    category: str
    monthly: float
    spent: float
    remaining: float
    level: str

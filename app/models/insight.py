from typing import Any, Dict, Optional

from pydantic import BaseModel


class InsightAction(BaseModel):
    action: Optional[Dict[str, Any]] = None

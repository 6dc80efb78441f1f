"""Condition data model for opsflow."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class ConditionOperator(str, Enum):
    """Condition operator enumeration."""
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    CONTAINS = "contains"
    REGEX = "regex"
    BETWEEN = "between"
    EXISTS = "exists"


class ConditionLogic(str, Enum):
    """How a list of conditions is combined."""
    AND = "and"
    OR = "or"


class Condition(BaseModel):
    """A single field-level predicate evaluated against an attribute map."""

    field: str = Field(..., description="Dot-separated path into the attribute map")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Expected value (list for in/nin, lower bound for between)")
    value_end: Optional[Any] = Field(None, description="Upper bound for the between operator")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

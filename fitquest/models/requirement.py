"""
Quest requirement DSL

A requirement is one of three variants, discriminated on ``type``:

- numeric:  {"type": "numeric", "metric": "steps", "operator": "gte", "value": 10000}
- boolean:  {"type": "boolean", "metric": "no_alcohol", "expected": true}
- compound: {"type": "compound", "operator": "and", "requirements": [...]}

``metric_of`` and ``target_of`` are total: they never raise, because the
calibrator uses them to pick numeric bounds for any template.
"""
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fitquest.exceptions import ValidationError

UNKNOWN_METRIC = "unknown"


class NumericRequirement(BaseModel):
    """Numeric threshold on a health metric"""
    type: Literal["numeric"] = "numeric"
    metric: str
    operator: Literal["gte", "lte", "eq", "gt", "lt"] = "gte"
    value: float
    unit: Optional[str] = None


class BooleanRequirement(BaseModel):
    """Yes/no requirement (true/false encoded as 1/0)"""
    type: Literal["boolean"] = "boolean"
    metric: str
    expected: bool = True


class CompoundRequirement(BaseModel):
    """Combination of child requirements"""
    type: Literal["compound"] = "compound"
    operator: Literal["and", "or"] = "and"
    requirements: list["Requirement"] = Field(default_factory=list)


Requirement = Annotated[
    Union[NumericRequirement, BooleanRequirement, CompoundRequirement],
    Field(discriminator="type"),
]

CompoundRequirement.model_rebuild()

_requirement_adapter: TypeAdapter = TypeAdapter(Requirement)


class RequirementResult(BaseModel):
    """Outcome of evaluating a requirement against metric data"""
    met: bool
    progress: float  # 0-100
    target: float


def parse_requirement(raw: Any) -> Union[NumericRequirement, BooleanRequirement, CompoundRequirement]:
    """
    Parse a JSONB requirement payload into a typed requirement

    Raises:
        ValidationError: If the payload is not a valid requirement
    """
    if isinstance(raw, (NumericRequirement, BooleanRequirement, CompoundRequirement)):
        return raw
    try:
        return _requirement_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            message=f"Malformed quest requirement: {e.errors()[0]['msg']}",
            field="requirement",
            value=raw,
        )


def metric_of(requirement) -> str:
    """Metric name of a requirement; compound requirements use their first child"""
    if isinstance(requirement, (NumericRequirement, BooleanRequirement)):
        return requirement.metric
    if isinstance(requirement, CompoundRequirement):
        if requirement.requirements:
            return metric_of(requirement.requirements[0])
        return UNKNOWN_METRIC
    return UNKNOWN_METRIC


def target_of(requirement) -> float:
    """Default target of a requirement; compound requirements use their first child"""
    if isinstance(requirement, NumericRequirement):
        return requirement.value
    if isinstance(requirement, BooleanRequirement):
        return 1
    if isinstance(requirement, CompoundRequirement):
        if requirement.requirements:
            return target_of(requirement.requirements[0])
        return 0
    return 0


def evaluate_requirement(requirement, data: dict[str, Any]) -> RequirementResult:
    """
    Evaluate a requirement against reported metric values

    Args:
        requirement: Parsed requirement
        data: Metric name -> reported value (numbers or booleans)

    Returns:
        RequirementResult with progress as a 0-100 percentage
    """
    if isinstance(requirement, NumericRequirement):
        value = data.get(requirement.metric) or 0
        target = requirement.value

        comparisons = {
            "gte": value >= target,
            "lte": value <= target,
            "eq": value == target,
            "gt": value > target,
            "lt": value < target,
        }
        met = comparisons[requirement.operator]

        if target > 0:
            progress = min(value / target * 100, 100.0)
        else:
            progress = 100.0 if met else 0.0
        return RequirementResult(met=met, progress=progress, target=target)

    if isinstance(requirement, BooleanRequirement):
        met = data.get(requirement.metric) == requirement.expected
        return RequirementResult(met=met, progress=100.0 if met else 0.0, target=1)

    if isinstance(requirement, CompoundRequirement):
        if not requirement.requirements:
            return RequirementResult(met=False, progress=0.0, target=0)

        results = [evaluate_requirement(r, data) for r in requirement.requirements]
        if requirement.operator == "and":
            met = all(r.met for r in results)
            progress = sum(r.progress for r in results) / len(results)
        else:
            met = any(r.met for r in results)
            progress = max(r.progress for r in results)
        return RequirementResult(met=met, progress=progress, target=100)

    return RequirementResult(met=False, progress=0.0, target=0)

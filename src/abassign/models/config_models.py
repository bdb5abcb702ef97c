from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class ExperimentOperation(BaseModel):
    action: Literal["add", "remove"] = "add"
    name: str = Field(min_length=1)
    experiment: Optional[str] = None
    segments: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_add_fields(self):
        if self.action == "add":
            if not self.experiment:
                raise ValueError(f"add operation for '{self.name}' requires experiment")
            if self.segments is None:
                raise ValueError(f"add operation for '{self.name}' requires segments")
        return self


class NamespaceConfig(BaseModel):
    name: str = Field(min_length=1)
    primary_unit: Union[str, List[str]]
    num_segments: int = Field(gt=0)
    operations: List[ExperimentOperation] = []
    default_params: Dict[str, Any] = {}

    @field_validator("primary_unit")
    @classmethod
    def check_primary_unit(cls, value):
        keys = [value] if isinstance(value, str) else value
        if not keys or any(not k for k in keys):
            raise ValueError("primary_unit cannot be empty")
        return value

    @model_validator(mode="after")
    def check_capacity(self):
        # replay the operations to catch over-allocation before any namespace is built
        active: Dict[str, int] = {}
        for op in self.operations:
            if op.action == "add":
                if op.name in active:
                    raise ValueError(f"experiment '{op.name}' added twice")
                active[op.name] = op.segments
            else:
                if op.name not in active:
                    raise ValueError(f"experiment '{op.name}' removed before being added")
                del active[op.name]
            if sum(active.values()) > self.num_segments:
                raise ValueError(f"operations allocate more than {self.num_segments} segments")
        return self

"""Deployment template models (parameters, mappings, resources, outputs)."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


ParameterType = Literal["String", "Number", "CommaDelimitedList"]


class ParameterDefinition(BaseModel):
    """A template input, substituted wherever ``Ref`` names it."""

    model_config = ConfigDict(extra="forbid")

    type: ParameterType = "String"
    default: Any = None
    description: str = ""
    allowed_values: list[Any] | None = None

    def coerce(self, name: str, value: Any) -> Any:
        """Convert a raw value (often a CLI string) into this parameter's type."""
        if self.type == "Number":
            if isinstance(value, bool):
                raise ValueError(f"Parameter {name} expects a number, got {value!r}")
            if isinstance(value, int | float):
                result: Any = value
            else:
                try:
                    result = int(value)
                except (TypeError, ValueError):
                    try:
                        result = float(value)
                    except (TypeError, ValueError) as exc:
                        raise ValueError(
                            f"Parameter {name} expects a number, got {value!r}"
                        ) from exc
        elif self.type == "CommaDelimitedList":
            if isinstance(value, list):
                result = [str(v) for v in value]
            else:
                result = [part.strip() for part in str(value).split(",") if part.strip()]
        else:
            result = str(value)

        if self.allowed_values is not None and result not in self.allowed_values:
            allowed = ", ".join(repr(v) for v in self.allowed_values)
            raise ValueError(f"Parameter {name} must be one of {allowed}, got {result!r}")
        return result


class ResourceDefinition(BaseModel):
    """One declared resource: a type tag, properties and explicit dependencies."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    description: str = ""
    properties: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = Field(
        default_factory=dict
    )
    depends_on: Annotated[list[str], BeforeValidator(_none_to_list)] = Field(
        default_factory=list
    )


class Template(BaseModel):
    """The declarative part of a deployment document."""

    parameters: Annotated[dict[str, ParameterDefinition], BeforeValidator(_none_to_dict)] = Field(
        default_factory=dict
    )
    mappings: Annotated[
        dict[str, dict[str, dict[str, Any]]], BeforeValidator(_none_to_dict)
    ] = Field(default_factory=dict)
    resources: Annotated[dict[str, ResourceDefinition], BeforeValidator(_none_to_dict)] = Field(
        default_factory=dict
    )
    outputs: Annotated[dict[str, Any], BeforeValidator(_none_to_dict)] = Field(
        default_factory=dict
    )

# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Metadata types describing actions, functions and option sets.

``ActionMetadata`` and ``FunctionMetadata`` are the inputs of the action
invoker: they name the operation, say whether it is bound to an entity type
and list its parameters in declared order.

See: https://learn.microsoft.com/en-us/power-apps/developer/data-platform/webapi/use-web-api-actions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core._error_codes import CONFIG_INVALID_VALUE
from ..core.errors import ConfigurationError


@dataclass(frozen=True)
class ParameterMetadata:
    """
    A declared action or function parameter.

    :param name: Parameter name as declared in ``$metadata``.
    :type name: str
    :param type_hint: EDM type name (e.g. ``Edm.String``, ``Edm.Guid``). Drives
        literal formatting for function parameters.
    :type type_hint: str | None
    :param optional: Whether callers may omit the parameter.
    :type optional: bool
    """

    name: str
    type_hint: Optional[str] = None
    optional: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigurationError("parameter name is required", subcode=CONFIG_INVALID_VALUE)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParameterMetadata":
        """Build from a ``{"Name", "Type", "Nullable"}`` style dictionary."""
        return cls(
            name=data.get("name") or data.get("Name") or "",
            type_hint=data.get("type_hint") or data.get("Type"),
            optional=bool(data.get("optional", data.get("Nullable", False))),
        )


def _parameters(params: Any) -> Tuple[ParameterMetadata, ...]:
    out: List[ParameterMetadata] = []
    for p in params or ():
        out.append(p if isinstance(p, ParameterMetadata) else ParameterMetadata.from_dict(p))
    names = [p.name for p in out]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"duplicate parameter names: {', '.join(duplicates)}", subcode=CONFIG_INVALID_VALUE)
    return tuple(out)


@dataclass(frozen=True)
class _OperationMetadata:
    name: str
    parameters: Tuple[ParameterMetadata, ...] = ()
    bound_parameter_type: Optional[str] = None
    bound_prefix: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigurationError("operation name is required", subcode=CONFIG_INVALID_VALUE)
        object.__setattr__(self, "parameters", _parameters(self.parameters))

    @property
    def is_bound(self) -> bool:
        return self.bound_parameter_type is not None

    @property
    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]

    @property
    def required_parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters if not p.optional]

    @property
    def parameter_types(self) -> Dict[str, str]:
        return {p.name: p.type_hint for p in self.parameters if p.type_hint}


@dataclass(frozen=True)
class ActionMetadata(_OperationMetadata):
    """
    Metadata of an action (invoked with ``POST`` and a JSON body).

    :param name: Action name, e.g. ``"WinOpportunity"``.
    :param parameters: Declared parameters in order.
    :param bound_parameter_type: Entity type the action is bound to
        (e.g. ``"mscrm.account"``); ``None`` for unbound actions.
    :param bound_prefix: Namespace placed before the name in the URL of a bound
        call, e.g. ``"Microsoft.Dynamics.CRM"``.
    """


@dataclass(frozen=True)
class FunctionMetadata(_OperationMetadata):
    """Metadata of a function (invoked with ``GET`` and parameter aliases in the URL)."""


@dataclass(frozen=True)
class OptionSetEntry:
    """One option of a picklist attribute."""

    label: str
    value: int

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "value": self.value}


@dataclass(frozen=True)
class OptionSet:
    """
    The options of one picklist attribute, in server order.

    :param entity_logical_name: Entity the attribute belongs to.
    :param attribute_logical_name: Picklist attribute.
    :param options: Option entries.
    :param is_global: Whether the options came from a global option set.
    """

    entity_logical_name: str
    attribute_logical_name: str
    options: Tuple[OptionSetEntry, ...] = ()
    is_global: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", tuple(self.options))

    def label_for(self, value: int) -> Optional[str]:
        for o in self.options:
            if o.value == value:
                return o.label
        return None

    def value_for(self, label: str) -> Optional[int]:
        """Case-insensitive label lookup."""
        wanted = label.strip().lower()
        for o in self.options:
            if o.label.strip().lower() == wanted:
                return o.value
        return None

    def __iter__(self):
        return iter(self.options)

    def __len__(self) -> int:
        return len(self.options)


__all__ = [
    "ParameterMetadata",
    "ActionMetadata",
    "FunctionMetadata",
    "OptionSetEntry",
    "OptionSet",
]

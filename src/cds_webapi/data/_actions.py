# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Action and function invocation: metadata plus arguments to an operation."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..core._error_codes import CONFIG_BINDING
from ..core.errors import ConfigurationError, ParameterMismatchError
from ..models.metadata import ActionMetadata, FunctionMetadata
from ..models.operations import (
    BoundAction,
    BoundFunction,
    RecordKey,
    UnboundAction,
    UnboundFunction,
)

InvocationMetadata = Union[ActionMetadata, FunctionMetadata]
Invocation = Union[BoundAction, BoundFunction, UnboundAction, UnboundFunction]


def bind_parameters(
    metadata: InvocationMetadata,
    positional: Sequence[Any] = (),
    named: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Bind positional and named arguments to the declared parameters.

    Positional arguments bind in declared order. The result keeps declared
    order.

    :raises ~cds_webapi.core.errors.ParameterMismatchError: If a name is not
        declared, a required parameter is missing, or there are more positional
        arguments than parameters.
    :raises ~cds_webapi.core.errors.ConfigurationError: If a parameter is given
        both positionally and by name.
    """
    declared = metadata.parameter_names
    named = dict(named or {})

    unexpected: List[str] = [f"#{i + 1}" for i in range(len(declared), len(positional))]
    unexpected.extend(k for k in named if k not in declared)

    supplied: Dict[str, Any] = {}
    for name, value in zip(declared, positional):
        supplied[name] = value
    twice = [k for k in named if k in supplied]
    if twice:
        raise ConfigurationError(
            f"Parameter(s) given both positionally and by name for '{metadata.name}': {', '.join(twice)}",
            subcode=CONFIG_BINDING,
        )
    supplied.update((k, v) for k, v in named.items() if k in declared)

    missing = [n for n in metadata.required_parameter_names if n not in supplied]
    if unexpected or missing:
        raise ParameterMismatchError(metadata.name, unexpected=unexpected, missing=missing)
    return {name: supplied[name] for name in declared if name in supplied}


class ActionInvoker:
    """
    Turns action/function metadata and call arguments into operations.

    Example::

        quote = FunctionMetadata(
            "GetQuote",
            parameters=[ParameterMetadata("Amount", "Edm.Decimal")],
            bound_parameter_type="mscrm.account",
        )
        op = ActionInvoker().invoke(quote, 100, entity_set="accounts", record_id=account_id)
        # BoundFunction -> GET accounts(<id>)/GetQuote(Amount=@Amount)?@Amount=100
    """

    def invoke(
        self,
        metadata: InvocationMetadata,
        *args: Any,
        entity_set: Optional[str] = None,
        record_id: Optional[RecordKey] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Invocation:
        """
        Build the operation for one call.

        :param metadata: :class:`ActionMetadata` or :class:`FunctionMetadata`.
        :param args: Positional arguments, bound in declared order.
        :param entity_set: Entity set of the bound record (bound operations only).
        :param record_id: Id of the bound record (bound operations only).
        :param parameters: Named arguments.
        :param headers: Extra request headers.
        :raises ~cds_webapi.core.errors.ConfigurationError: If binding information is
            missing for a bound operation or supplied for an unbound one.
        :raises ~cds_webapi.core.errors.ParameterMismatchError: If arguments do not
            match the declared parameters.
        """
        if not isinstance(metadata, (ActionMetadata, FunctionMetadata)):
            raise ConfigurationError(
                f"Expected ActionMetadata or FunctionMetadata, got {type(metadata).__name__}",
                subcode=CONFIG_BINDING,
            )
        if metadata.is_bound:
            if not entity_set or record_id is None:
                raise ConfigurationError(
                    f"'{metadata.name}' is bound to {metadata.bound_parameter_type}; "
                    "entity_set and record_id are required",
                    subcode=CONFIG_BINDING,
                )
        elif entity_set is not None or record_id is not None:
            raise ConfigurationError(
                f"'{metadata.name}' is unbound; entity_set and record_id must not be given",
                subcode=CONFIG_BINDING,
            )

        bound = bind_parameters(metadata, args, parameters)
        extra = dict(headers or {})
        if isinstance(metadata, ActionMetadata):
            if metadata.is_bound:
                return BoundAction(
                    entity_set=entity_set,  # type: ignore[arg-type]
                    id=record_id,  # type: ignore[arg-type]
                    name=metadata.name,
                    parameters=bound,
                    bound_prefix=metadata.bound_prefix,
                    headers=extra,
                )
            return UnboundAction(name=metadata.name, parameters=bound, headers=extra)
        if metadata.is_bound:
            return BoundFunction(
                entity_set=entity_set,  # type: ignore[arg-type]
                id=record_id,  # type: ignore[arg-type]
                name=metadata.name,
                parameters=bound,
                bound_prefix=metadata.bound_prefix,
                parameter_types=metadata.parameter_types,
                headers=extra,
            )
        return UnboundFunction(
            name=metadata.name,
            parameters=bound,
            parameter_types=metadata.parameter_types,
            headers=extra,
        )


__all__ = ["ActionInvoker", "bind_parameters"]

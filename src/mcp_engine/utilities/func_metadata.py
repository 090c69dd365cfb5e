"""Argument models derived from Python function signatures.

Tools, prompts and resource templates are plain functions. Their parameters are
turned into a pydantic model so that the JSON arguments a client sends can be
validated (and advertised as a JSON schema) before the function is called.
"""

import inspect
import json
from collections.abc import Callable
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, WithJsonSchema, create_model
from pydantic.fields import FieldInfo

from mcp_engine.server.exceptions import InvalidSignature

# Untyped parameters are accepted as anything and advertised as strings
_UNTYPED = Annotated[Any, Field(), WithJsonSchema({"type": "string"})]


class ArgModelBase(BaseModel):
    """Base for the generated argument models."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def as_kwargs(self) -> dict[str, Any]:
        """Field values as keyword arguments.

        Nested models are passed through as model instances, not dumped.
        """
        return {name: getattr(self, name) for name in type(self).model_fields}


def _decode_json_strings(model: type[ArgModelBase], arguments: dict[str, Any]) -> dict[str, Any]:
    """Replace JSON-encoded list/object strings with their decoded values.

    Clients often send structured arguments as JSON text. Scalars are left
    alone so that ``"42"`` or ``"\\"hi\\""`` keep their string form.
    Parameters declared as ``str`` are never decoded.
    """
    decoded = dict(arguments)
    for name, field_info in model.model_fields.items():
        value = arguments.get(name)
        if not isinstance(value, str) or field_info.annotation is str:
            continue
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict | list):
            decoded[name] = parsed
    return decoded


class FuncMetadata(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    arg_model: Annotated[type[ArgModelBase], WithJsonSchema(None)]

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate raw client arguments and return keyword arguments for the call.

        Raises:
            pydantic.ValidationError: the arguments do not fit the signature.
        """
        validated = self.arg_model.model_validate(_decode_json_strings(self.arg_model, arguments))
        return validated.as_kwargs()

    async def call(self, fn: Callable[..., Any], fn_is_async: bool, arguments: dict[str, Any]) -> Any:
        kwargs = self.validate_arguments(arguments)
        if fn_is_async:
            return await fn(**kwargs)
        return fn(**kwargs)


def func_metadata(func: Callable[..., Any]) -> FuncMetadata:
    """Build the argument model for ``func``.

    Raises:
        InvalidSignature: a parameter name starts with an underscore.
    """
    fields: dict[str, Any] = {}
    for param in inspect.signature(func, eval_str=True).parameters.values():
        if param.name.startswith("_"):
            raise InvalidSignature(f"Parameter {param.name} of {func.__name__} cannot start with '_'")

        annotation = _UNTYPED if param.annotation is inspect.Parameter.empty else param.annotation
        default = ... if param.default is inspect.Parameter.empty else param.default
        field_info = FieldInfo.from_annotated_attribute(annotation, default)
        fields[param.name] = (field_info.annotation, field_info)

    model = create_model(f"{func.__name__}Arguments", __base__=ArgModelBase, **fields)
    return FuncMetadata(arg_model=model)


def is_async_callable(obj: Any) -> bool:
    return inspect.iscoroutinefunction(obj) or (
        callable(obj) and inspect.iscoroutinefunction(getattr(obj, "__call__", None))
    )

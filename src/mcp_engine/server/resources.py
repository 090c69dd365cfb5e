"""Resource catalog.

Static resources are registered under a fixed URI; templates carry an RFC 6570
style URI with ``{name}`` placeholders whose values are passed to the reader
function as keyword arguments.
"""

import base64
import re
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

import mcp_engine.types as types
from mcp_engine.shared.exceptions import McpError
from mcp_engine.utilities.func_metadata import FuncMetadata, func_metadata, is_async_callable
from mcp_engine.utilities.logging import get_logger

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"{(\w+)}")


def _compile_template(uri_template: str) -> re.Pattern[str]:
    parts: list[str] = []
    last = 0
    for placeholder in _PLACEHOLDER.finditer(uri_template):
        parts.append(re.escape(uri_template[last : placeholder.start()]))
        parts.append(f"(?P<{placeholder.group(1)}>[^/]+)")
        last = placeholder.end()
    parts.append(re.escape(uri_template[last:]))
    return re.compile("".join(parts))


class Resource(BaseModel):
    """A readable resource backed by a function."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None
    fn: Callable[..., Any] = Field(exclude=True)
    is_async: bool = False

    def to_mcp_resource(self) -> types.Resource:
        return types.Resource(uri=self.uri, name=self.name, description=self.description, mimeType=self.mime_type)

    async def read(self) -> Any:
        if self.is_async:
            return await self.fn()
        return self.fn()


class ResourceTemplate(BaseModel):
    """A template for dynamically creating resources."""

    uri_template: str
    name: str
    description: str | None = None
    mime_type: str | None = None
    fn: Callable[..., Any] = Field(exclude=True)
    fn_metadata: FuncMetadata
    is_async: bool = False

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        uri_template: str,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> "ResourceTemplate":
        """Create a template from a function.

        Raises:
            ValueError: the URI placeholders and the function parameters differ.
        """
        func_name = name or fn.__name__
        if func_name == "<lambda>":
            raise ValueError("You must provide a name for lambda functions")

        metadata = func_metadata(fn)
        uri_params = set(_PLACEHOLDER.findall(uri_template))
        func_params = set(metadata.arg_model.model_fields)
        if uri_params != func_params:
            raise ValueError(
                f"Mismatch between URI parameters {sorted(uri_params)} and function parameters {sorted(func_params)}"
            )

        return cls(
            uri_template=uri_template,
            name=func_name,
            description=description or fn.__doc__,
            mime_type=mime_type,
            fn=fn,
            fn_metadata=metadata,
            is_async=is_async_callable(fn),
        )

    def to_mcp_template(self) -> types.ResourceTemplate:
        return types.ResourceTemplate(
            uriTemplate=self.uri_template,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )

    def matches(self, uri: str) -> dict[str, Any] | None:
        """Check if URI matches template and extract parameters."""
        match = _compile_template(self.uri_template).fullmatch(uri)
        if match:
            return match.groupdict()
        return None

    async def read(self, params: dict[str, Any]) -> Any:
        return await self.fn_metadata.call(self.fn, self.is_async, params)


def _to_contents(
    uri: str, mime_type: str | None, data: Any
) -> list[types.TextResourceContents | types.BlobResourceContents]:
    match data:
        case types.TextResourceContents() | types.BlobResourceContents():
            return [data]
        case bytes():
            return [
                types.BlobResourceContents(
                    uri=uri,
                    blob=base64.b64encode(data).decode(),
                    mimeType=mime_type or "application/octet-stream",
                )
            ]
        case str():
            return [types.TextResourceContents(uri=uri, text=data, mimeType=mime_type or "text/plain")]
        case list():
            return [item for entry in data for item in _to_contents(uri, mime_type, entry)]
        case _:
            raise ValueError(f"Unsupported resource content: {type(data).__name__}")


class ResourceManager:
    """Manages registered resources and resource templates."""

    def __init__(self, warn_on_duplicate_resources: bool = True):
        self._resources: dict[str, Resource] = {}
        self._templates: dict[str, ResourceTemplate] = {}
        self.warn_on_duplicate_resources = warn_on_duplicate_resources

    def add_resource(
        self,
        uri: str,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> Resource:
        """Register a static resource.

        Returns:
            The added resource. If a resource with the same URI already exists,
            returns the existing resource.
        """
        existing = self._resources.get(uri)
        if existing:
            if self.warn_on_duplicate_resources:
                logger.warning(f"Resource already exists: {uri}")
            return existing
        resource = Resource(
            uri=uri,
            name=name or fn.__name__,
            description=description or fn.__doc__,
            mime_type=mime_type,
            fn=fn,
            is_async=is_async_callable(fn),
        )
        self._resources[uri] = resource
        logger.debug(f"Added resource {uri}")
        return resource

    def add_template(
        self,
        fn: Callable[..., Any],
        uri_template: str,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> ResourceTemplate:
        """Add a template from a function."""
        template = ResourceTemplate.from_function(
            fn, uri_template=uri_template, name=name, description=description, mime_type=mime_type
        )
        self._templates[template.uri_template] = template
        return template

    def resource(
        self, uri: str, name: str | None = None, description: str | None = None, mime_type: str | None = None
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a resource, or a template when ``uri`` has placeholders."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            if _PLACEHOLDER.search(uri):
                self.add_template(fn, uri, name=name, description=description, mime_type=mime_type)
            else:
                self.add_resource(uri, fn, name=name, description=description, mime_type=mime_type)
            return fn

        return decorator

    def list_resources(self) -> list[Resource]:
        """List all registered resources."""
        return list(self._resources.values())

    def list_templates(self) -> list[ResourceTemplate]:
        """List all registered templates."""
        return list(self._templates.values())

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        """Read a resource by URI, trying static resources before templates.

        Raises:
            McpError: INVALID_PARAMS when nothing is registered for ``uri``.
        """
        resource = self._resources.get(uri)
        if resource:
            data = await resource.read()
            return types.ReadResourceResult(contents=_to_contents(uri, resource.mime_type, data))

        for template in self._templates.values():
            params = template.matches(uri)
            if params is not None:
                data = await template.read(params)
                return types.ReadResourceResult(contents=_to_contents(uri, template.mime_type, data))

        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"Unknown resource: {uri}"))

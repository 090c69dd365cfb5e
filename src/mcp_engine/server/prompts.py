"""Prompt catalog.

Prompts are functions that render a list of messages from string arguments. The
argument list advertised to clients is read off the function signature.
"""

import inspect
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError

import mcp_engine.types as types
from mcp_engine.shared.exceptions import McpError
from mcp_engine.utilities.func_metadata import FuncMetadata, func_metadata, is_async_callable
from mcp_engine.utilities.logging import get_logger

logger = get_logger(__name__)


def _invalid_params(message: str) -> McpError:
    return McpError(types.ErrorData(code=types.INVALID_PARAMS, message=message))


class Prompt(BaseModel):
    """A prompt template that can be rendered with parameters."""

    name: str = Field(description="Name of the prompt")
    description: str | None = Field(None, description="Description of what the prompt does")
    arguments: list[types.PromptArgument] = Field(default_factory=list)
    fn: Callable[..., Any] = Field(exclude=True)
    fn_metadata: FuncMetadata
    is_async: bool = Field(description="Whether the prompt function is async")

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
    ) -> "Prompt":
        """Create a Prompt from a function.

        Parameters without a default are advertised as required arguments.
        """
        func_name = name or fn.__name__
        if func_name == "<lambda>":
            raise ValueError("You must provide a name for lambda functions")

        arguments = [
            types.PromptArgument(name=param.name, required=param.default is inspect.Parameter.empty)
            for param in inspect.signature(fn).parameters.values()
        ]
        doc = description or fn.__doc__
        return cls(
            name=func_name,
            description=doc.strip() if doc else None,
            arguments=arguments,
            fn=fn,
            fn_metadata=func_metadata(fn),
            is_async=is_async_callable(fn),
        )

    def to_mcp_prompt(self) -> types.Prompt:
        return types.Prompt(name=self.name, description=self.description, arguments=self.arguments or None)

    async def render(self, arguments: dict[str, str] | None = None) -> list[types.PromptMessage]:
        """Render the prompt with arguments."""
        arguments = arguments or {}
        missing = {arg.name for arg in self.arguments if arg.required} - arguments.keys()
        if missing:
            raise _invalid_params(f"Missing required arguments: {sorted(missing)}")

        try:
            result = await self.fn_metadata.call(self.fn, self.is_async, arguments)
        except ValidationError as e:
            raise _invalid_params(f"Invalid arguments for prompt {self.name}: {e}") from e
        return _to_messages(result)


def _to_message(item: Any) -> types.PromptMessage:
    match item:
        case types.PromptMessage():
            return item
        case str():
            return types.PromptMessage(role="user", content=types.TextContent(text=item))
        case dict():
            return types.PromptMessage.model_validate(item)
        case _:
            raise ValueError(f"Could not convert prompt result to message: {item!r}")


def _to_messages(result: Any) -> list[types.PromptMessage]:
    if isinstance(result, str | types.PromptMessage | dict):
        return [_to_message(result)]
    if isinstance(result, Sequence):
        return [_to_message(item) for item in result]
    raise ValueError(f"Could not convert prompt result to messages: {result!r}")


class PromptManager:
    """Manages registered prompts."""

    def __init__(self, warn_on_duplicate_prompts: bool = True):
        self._prompts: dict[str, Prompt] = {}
        self.warn_on_duplicate_prompts = warn_on_duplicate_prompts

    def find_prompt(self, name: str) -> Prompt | None:
        """Look up a prompt by name."""
        return self._prompts.get(name)

    def list_prompts(self) -> list[Prompt]:
        """List all registered prompts."""
        return list(self._prompts.values())

    def add_prompt(
        self,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
    ) -> Prompt:
        """Add a prompt to the catalog."""
        prompt = Prompt.from_function(fn, name=name, description=description)
        existing = self._prompts.get(prompt.name)
        if existing:
            if self.warn_on_duplicate_prompts:
                logger.warning(f"Prompt already exists: {prompt.name}")
            return existing
        self._prompts[prompt.name] = prompt
        return prompt

    def prompt(
        self, name: str | None = None, description: str | None = None
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator to register a prompt."""
        if callable(name):
            raise TypeError(
                "The @prompt decorator was used incorrectly. Did you forget to call it? "
                "Use @prompt() instead of @prompt"
            )

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.add_prompt(fn, name=name, description=description)
            return fn

        return decorator

    async def get_prompt(self, name: str, arguments: dict[str, str] | None = None) -> types.GetPromptResult:
        """Render a prompt by name.

        Raises:
            McpError: INVALID_PARAMS for an unknown prompt or missing arguments.
        """
        prompt = self.find_prompt(name)
        if prompt is None:
            raise _invalid_params(f"Unknown prompt: {name}")

        messages = await prompt.render(arguments)
        return types.GetPromptResult(description=prompt.description, messages=messages)

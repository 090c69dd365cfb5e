from typing import Any

import pytest
from pydantic import BaseModel, ValidationError

from mcp_engine.server.exceptions import InvalidSignature
from mcp_engine.utilities.func_metadata import func_metadata, is_async_callable

pytestmark = pytest.mark.anyio


class Point(BaseModel):
    x: int
    y: int


def test_required_and_default_fields():
    def fn(a: int, b: str = "x"):
        pass

    schema = func_metadata(fn).arg_model.model_json_schema()

    assert schema["required"] == ["a"]
    assert schema["properties"]["a"]["type"] == "integer"
    assert schema["properties"]["b"]["default"] == "x"


def test_untyped_parameter_is_advertised_as_string():
    def fn(anything):
        pass

    meta = func_metadata(fn)

    assert meta.arg_model.model_json_schema()["properties"]["anything"]["type"] == "string"
    assert meta.validate_arguments({"anything": 3}) == {"anything": 3}


def test_underscore_parameter_rejected():
    def fn(_hidden: int):
        pass

    with pytest.raises(InvalidSignature, match="_hidden"):
        func_metadata(fn)


def test_json_encoded_structures_are_decoded():
    def fn(items: list[int], point: Point):
        pass

    kwargs = func_metadata(fn).validate_arguments({"items": "[1, 2]", "point": '{"x": 1, "y": 2}'})

    assert kwargs["items"] == [1, 2]
    assert kwargs["point"] == Point(x=1, y=2)


def test_string_parameters_are_not_decoded():
    def fn(text: str, count: int):
        pass

    kwargs = func_metadata(fn).validate_arguments({"text": "[1, 2]", "count": "42"})

    assert kwargs == {"text": "[1, 2]", "count": 42}


def test_missing_required_argument():
    def fn(a: int):
        pass

    with pytest.raises(ValidationError):
        func_metadata(fn).validate_arguments({})


async def test_call_sync_and_async():
    def add(a: int, b: int = 1) -> int:
        return a + b

    async def mul(a: int, b: int) -> int:
        return a * b

    assert await func_metadata(add).call(add, False, {"a": 2}) == 3
    assert await func_metadata(mul).call(mul, True, {"a": 2, "b": "4"}) == 8


def test_is_async_callable():
    class AsyncCallable:
        async def __call__(self) -> None:
            pass

    async def coro() -> None:
        pass

    def plain() -> Any:
        pass

    assert is_async_callable(coro)
    assert is_async_callable(AsyncCallable())
    assert not is_async_callable(plain)

"""Host-registered callables for Function nodes."""

import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

FunctionCallable = Callable[[dict[str, Any], dict[str, Any]], Any]


class FunctionRegistry:
    """
    Named callables that Function nodes can reference by ``config.function``.

    Each callable receives ``(params, context)``: the resolved input params
    and a read-only view of the run (``input``, ``variables``, ``nodes``).
    Coroutine functions are awaited.

    Example:
        functions = FunctionRegistry()

        @functions.function("word_count")
        def word_count(params, context):
            return {"count": len(str(params["text"]).split())}
    """

    def __init__(self):
        self._functions: dict[str, FunctionCallable] = {}

    def register(self, name: str, func: FunctionCallable) -> None:
        self._functions[name] = func

    def function(self, name: str | None = None) -> Callable[[FunctionCallable], FunctionCallable]:
        """Decorator form of ``register``."""

        def decorator(func: FunctionCallable) -> FunctionCallable:
            self.register(name or func.__name__, func)
            return func

        return decorator

    def get(self, name: str) -> FunctionCallable | None:
        return self._functions.get(name)

    def has(self, name: str) -> bool:
        return name in self._functions

    def names(self) -> list[str]:
        return list(self._functions.keys())

    async def call(self, name: str, params: dict[str, Any], context: dict[str, Any]) -> Any:
        """
        Call a registered function.

        Raises:
            KeyError: no function registered under ``name``
        """
        func = self._functions.get(name)
        if func is None:
            raise KeyError(f"Function '{name}' is not registered")
        result = func(params, context)
        if inspect.isawaitable(result):
            result = await result
        return result

"""Named tool handlers with stable listing order."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

ToolHandler = Callable[[dict[str, object]], dict[str, object]]


@dataclass(slots=True, frozen=True)
class ToolDispatchError(Exception):
    """Tool-level failure reported to the client with an error code."""

    code: str
    message: str


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """A registered tool and its one-line description."""

    name: str
    description: str
    handler: ToolHandler


@dataclass(slots=True)
class ToolRegistry:
    """In-memory registry; tools are listed in registration order."""

    _tools: dict[str, ToolSpec] = field(default_factory=dict)

    def register(self, name: str, handler: ToolHandler, description: str = "") -> None:
        """Register a named handler, replacing any previous one."""
        self._tools[name] = ToolSpec(name=name, description=description, handler=handler)

    def get(self, name: str) -> ToolSpec | None:
        """Return a tool by name."""
        return self._tools.get(name)

    def names(self) -> tuple[str, ...]:
        """Return registered tool names."""
        return tuple(self._tools)

    def describe(self) -> list[dict[str, str]]:
        """Return name and description of every tool."""
        return [
            {"name": spec.name, "description": spec.description}
            for spec in self._tools.values()
        ]

    def dispatch(self, name: str, arguments: dict[str, object]) -> dict[str, object]:
        """Run the named tool with arguments."""
        spec = self.get(name)
        if spec is None:
            raise ToolDispatchError(code="UNKNOWN_TOOL", message=f"Unknown tool: {name}")
        return spec.handler(arguments)

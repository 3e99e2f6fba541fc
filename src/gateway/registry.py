"""Tool Registry for the gateway.

Builds the catalog of callable tools from a declarative schema document.
The registry is read-only once built; it is rebuilt only on restart.
"""

from typing import Any, Iterator, Mapping, Optional

from shared.logging import get_logger
from shared.models import ToolDescriptor
from shared.schema import missing_required, normalize_parameters

logger = get_logger(__name__)


class ToolRegistry:
    """
    Ordered, immutable catalog of tool descriptors.

    Responsibilities:
    - Derive descriptors from a schema document
    - List tools in declaration order
    - Lookup tools by name
    - Check required arguments
    """

    def __init__(self, tools: list[ToolDescriptor]) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Tool '{tool.name}' is already registered")
            self._tools[tool.name] = tool

    @classmethod
    def from_schema(cls, document: Mapping[str, Any]) -> "ToolRegistry":
        """
        Build a registry from a schema document.

        The document lists operations under ``schema.properties``; each
        operation may omit ``parameters`` or ``required``, in which case
        an empty object schema is used.

        Args:
            document: Schema document with operations keyed by name

        Returns:
            A populated registry
        """
        operations = (document.get("schema") or {}).get("properties") or {}

        tools = [
            ToolDescriptor(
                name=name,
                description=operation.get("description") or f"Execute {name} method",
                input_schema=normalize_parameters(operation.get("parameters")),
                returns=operation.get("returns"),
            )
            for name, operation in operations.items()
        ]

        registry = cls(tools)
        logger.info(
            "Tool registry built",
            source=document.get("name"),
            tool_count=len(registry)
        )
        return registry

    def list_tools(self) -> list[ToolDescriptor]:
        """List all tools in declaration order."""
        return list(self._tools.values())

    def describe(self, name: str) -> Optional[ToolDescriptor]:
        """
        Get a tool by name.

        Returns:
            ToolDescriptor if found, None otherwise
        """
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def missing_required(self, name: str, arguments: Any) -> list[str]:
        """Return required arguments of ``name`` absent from ``arguments``."""
        tool = self.describe(name)
        if tool is None:
            return []
        return missing_required(arguments, tool.input_schema)

    def catalog(self) -> list[dict[str, Any]]:
        """Tools rendered for a tools/list reply."""
        return [tool.to_catalog_entry() for tool in self._tools.values()]

    def as_capabilities(self) -> dict[str, dict[str, Any]]:
        """Tools rendered as a name -> {description, inputSchema} map."""
        return {
            tool.name: {
                "description": tool.description,
                "inputSchema": tool.input_schema.to_json(),
            }
            for tool in self._tools.values()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

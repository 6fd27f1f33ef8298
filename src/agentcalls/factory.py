"""Engine selection by name."""

import logging
from typing import Any

from agentcalls.engine import ToolCallEngine
from agentcalls.gui_engine import GUIToolCallEngine
from agentcalls.mcp_engine import SeedMCPToolCallEngine
from agentcalls.native_engine import NativeToolCallEngine
from agentcalls.prompt_engine import PromptEngineeringToolCallEngine

logger = logging.getLogger(__name__)

ENGINES: dict[str, type[ToolCallEngine]] = {
    NativeToolCallEngine.name: NativeToolCallEngine,
    PromptEngineeringToolCallEngine.name: PromptEngineeringToolCallEngine,
    SeedMCPToolCallEngine.name: SeedMCPToolCallEngine,
    GUIToolCallEngine.name: GUIToolCallEngine,
}


def create_engine(kind: str, **kwargs: Any) -> ToolCallEngine:
    """
    Create an engine by name.

    Keyword arguments go to the engine constructor, e.g. `id_factory` or,
    for the GUI engine, `factors`.

    Raises:
        ValueError: If `kind` is not a known engine
    """
    engine_cls = ENGINES.get(kind)
    if engine_cls is None:
        raise ValueError(f"Unknown tool call engine '{kind}', expected one of {sorted(ENGINES)}")
    logger.debug(f"Creating {kind} tool call engine")
    return engine_cls(**kwargs)

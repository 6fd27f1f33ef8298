"""
Configuration for engines, the streaming client and the sandbox client.

All configuration is loaded from environment variables so the same code
runs against vLLM, Ollama or a hosted OpenAI-compatible endpoint without
hardcoding any specific values.
"""

import os
from dataclasses import dataclass, field


@dataclass
class LLMConfig:
    """Configuration for the LLM client."""
    base_url: str
    api_key: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 4096

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("LLM_BASE_URL", "http://localhost:8000/v1"),
            api_key=os.getenv("LLM_API_KEY", ""),
            model=os.getenv("LLM_MODEL", ""),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "4096")),
        )


@dataclass
class EngineConfig:
    """
    Which tool-call engine to use, and how GUI predictions are scaled.

    `gui_factors` is the coordinate space the GUI model predicts in; boxes
    are divided by it to get 0-1 coordinates.
    """
    kind: str = "native"
    gui_factors: tuple[int, int] = (1000, 1000)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        return cls(
            kind=os.getenv("TOOL_CALL_ENGINE", "native"),
            gui_factors=(
                int(os.getenv("GUI_FACTOR_X", "1000")),
                int(os.getenv("GUI_FACTOR_Y", "1000")),
            ),
        )


@dataclass
class LoopConfig:
    """
    Configuration for the agent loop.

    max_steps is a safety limit to prevent runaway loops.
    """
    max_steps: int = 20
    system_prompt: str = ""

    @classmethod
    def from_env(cls) -> "LoopConfig":
        """Load configuration from environment variables."""
        return cls(
            max_steps=int(os.getenv("AGENT_MAX_STEPS", "20")),
            system_prompt=os.getenv("AGENT_SYSTEM_PROMPT", ""),
        )


@dataclass
class AioConfig:
    """Configuration for the sandbox shell client."""
    base_url: str = "http://localhost:8080"
    timeout: float = 30.0
    retries: int = 1
    retry_delay: float = 1.0

    @classmethod
    def from_env(cls) -> "AioConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("AIO_BASE_URL", "http://localhost:8080"),
            timeout=float(os.getenv("AIO_TIMEOUT", "30")),
            retries=int(os.getenv("AIO_RETRIES", "1")),
            retry_delay=float(os.getenv("AIO_RETRY_DELAY", "1")),
        )


@dataclass
class AgentConfig:
    """Combined configuration for the entire agent system."""
    llm: LLMConfig
    engine: EngineConfig = field(default_factory=EngineConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    aio: AioConfig = field(default_factory=AioConfig)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load all configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            engine=EngineConfig.from_env(),
            loop=LoopConfig.from_env(),
            aio=AioConfig.from_env(),
        )

from analyst.model.llm import (
    ChatModelGateway,
    GatewayResponse,
    Provider,
    ReasoningGateway,
    ToolCall,
    build_messages,
    create_gateway,
    DEFAULT_MODEL,
)

__all__ = [
    "ChatModelGateway",
    "GatewayResponse",
    "Provider",
    "ReasoningGateway",
    "ToolCall",
    "build_messages",
    "create_gateway",
    "DEFAULT_MODEL",
]

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, AsyncGenerator, Union
from pydantic import BaseModel, Field
from enum import Enum
import json
import time
import logging

import jsonschema
from fastapi.encoders import jsonable_encoder


# =============================================================================
# Tool Calling Models
# =============================================================================

class ToolParameterType(str, Enum):
    """Supported parameter types for tool definitions"""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ToolArgumentError(ValueError):
    """Raised when model-supplied arguments do not match a tool's parameters"""
    pass


class ToolParameter(BaseModel):
    """Definition of a single tool parameter"""
    name: str
    type: ToolParameterType
    description: str
    required: bool = True
    enum: Optional[List[str]] = None
    default: Optional[Any] = None
    minimum: Optional[int] = None


class ToolDefinition(BaseModel):
    """Definition of a tool that can be called by the LLM"""
    name: str
    description: str
    parameters: List[ToolParameter] = Field(default_factory=list)

    def _json_schema(self) -> Dict[str, Any]:
        properties = {}
        required = []

        for param in self.parameters:
            prop = {
                "type": param.type.value,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default
            if param.minimum is not None:
                prop["minimum"] = param.minimum

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
            "additionalProperties": False,
        }

    def to_anthropic_format(self) -> Dict[str, Any]:
        """Convert to Anthropic's tool schema format"""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self._json_schema(),
        }

    def to_openai_format(self) -> Dict[str, Any]:
        """Convert to the OpenAI chat-completions function format"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self._json_schema(),
            },
        }

    def validate_arguments(self, arguments: Any) -> Dict[str, Any]:
        """Validate model-supplied arguments against the published JSON schema.

        The schema is closed, so unknown names fail as well as missing
        required values, wrong types, enum misses and values below a minimum.
        Explicit nulls count as omitted. Omitted optional parameters take
        their default once validation has passed.
        """
        if arguments is None:
            arguments = {}
        if isinstance(arguments, dict):
            arguments = {name: value for name, value in arguments.items() if value is not None}

        try:
            jsonschema.validate(instance=arguments, schema=self._json_schema())
        except jsonschema.ValidationError as e:
            raise ToolArgumentError(self._describe_violation(e)) from e

        validated: Dict[str, Any] = dict(arguments)
        for param in self.parameters:
            if param.name not in validated:
                if param.default is not None:
                    validated[param.name] = param.default
            elif param.type == ToolParameterType.INTEGER:
                # JSON Schema accepts integral floats such as 3.0
                validated[param.name] = int(validated[param.name])
        return validated

    def _describe_violation(self, error: jsonschema.ValidationError) -> str:
        if not error.path:
            if error.validator == "type":
                return f"Arguments for {self.name} must be a JSON object"
            if error.validator == "required":
                missing = [name for name in error.validator_value if name not in error.instance]
                return f"Missing required argument '{missing[0]}' for {self.name}"
            if error.validator == "additionalProperties":
                unexpected = sorted(set(error.instance) - set(error.schema.get("properties", {})))
                return f"Unexpected argument(s) for {self.name}: {', '.join(unexpected)}"
            return f"Invalid arguments for {self.name}: {error.message}"

        name = error.path[0]
        if error.validator == "type":
            return (
                f"Argument '{name}' must be of type {error.validator_value}, "
                f"got {type(error.instance).__name__}"
            )
        if error.validator == "enum":
            return f"Argument '{name}' must be one of: {', '.join(map(str, error.validator_value))}"
        if error.validator == "minimum":
            return f"Argument '{name}' must be at least {error.validator_value}"
        return f"Argument '{name}': {error.message}"


class ToolCall(BaseModel):
    """A tool call requested by the LLM"""
    id: str
    name: str
    arguments: Any = Field(default_factory=dict)
    argument_error: Optional[str] = None  # set when the raw arguments could not be decoded


class ToolResult(BaseModel):
    """Result of executing a tool"""
    tool_call_id: str
    result: Any = None
    error: Optional[str] = None

    @property
    def payload(self) -> Any:
        """Wire shape fed back to the model: the result, or ``{"error": message}``"""
        if self.error is not None:
            return {"error": self.error}
        return self.result

    def content_text(self) -> str:
        content = self.payload
        if isinstance(content, str):
            return content
        return json.dumps(jsonable_encoder(content))

    def to_anthropic_format(self) -> Dict[str, Any]:
        """Convert to Anthropic's tool_result format"""
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_call_id,
            "content": self.content_text(),
            "is_error": self.error is not None,
        }

    def to_openai_format(self) -> Dict[str, Any]:
        """Convert to an OpenAI ``tool`` role message"""
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": self.content_text(),
        }


# =============================================================================
# Message Models
# =============================================================================

class LLMMessage(BaseModel):
    """Standardized message format for LLM communication"""
    role: str  # "system", "user", "assistant", "tool"
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None  # For assistant messages with tool use
    tool_result: Optional[ToolResult] = None      # For tool result messages


class LLMResponse(BaseModel):
    """Standardized response from LLM providers"""
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tokens_used: Optional[int] = None
    model: Optional[str] = None
    finish_reason: Optional[str] = None  # "stop", "tool_calls", "end_turn", "tool_use", "max_tokens"
    response_time_ms: Optional[float] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    # Class attribute indicating if provider supports native tool calling
    supports_tools: bool = False

    def __init__(self, api_key: str, model: str, **kwargs):
        self.api_key = api_key
        self.model = model
        self.logger = logging.getLogger(f"{self.__class__.__name__}")
        self._setup_client(**kwargs)

    @abstractmethod
    def _setup_client(self, **kwargs) -> None:
        """Initialize the provider-specific client"""
        pass

    @abstractmethod
    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from the LLM

        Args:
            messages: List of messages in the conversation
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            tools: Optional list of tool definitions for function calling
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse with content and/or tool_calls
        """
        pass

    @abstractmethod
    async def generate_streaming_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs
    ) -> AsyncGenerator[Union[str, LLMResponse], None]:
        """Stream a response from the LLM with optional tool calling

        Yields text deltas as ``str`` in the order the model produces them,
        then exactly one ``LLMResponse`` carrying the complete content and
        any tool calls.
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check if the provider is healthy and responding"""
        pass

    def _create_response(self, content: Optional[str], **metadata) -> LLMResponse:
        """Helper method to create standardized responses"""
        return LLMResponse(
            content=content,
            model=self.model,
            **metadata
        )

    def _measure_time(self, start_time: float) -> float:
        """Helper to measure response time in milliseconds"""
        return (time.time() - start_time) * 1000


class LLMProviderError(Exception):
    """Base exception for LLM provider errors"""
    pass


class LLMProviderRateLimitError(LLMProviderError):
    """Raised when hitting rate limits"""
    pass


class LLMProviderAuthError(LLMProviderError):
    """Raised when authentication fails"""
    pass


class LLMProviderAPIError(LLMProviderError):
    """Raised when API request fails"""
    pass

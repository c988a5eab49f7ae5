import logging
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.encoders import jsonable_encoder

from ..core.agent import ToolContext, ToolExecutor, ToolRegistry, get_tool_registry
from ..providers.llm.base import ToolCall
from ..types import ToolInfo, ToolInvocationResponse, ToolParameterInfo
from .chat import get_tool_context

router = APIRouter(prefix="/tools")
_logger = logging.getLogger(__name__)


@router.get("", response_model=List[ToolInfo])
async def list_tools(registry: ToolRegistry = Depends(get_tool_registry)) -> List[ToolInfo]:
    """Catalog of tools the assistant can call"""

    return [
        ToolInfo(
            name=definition.name,
            description=definition.description,
            parameters=[
                ToolParameterInfo(
                    name=param.name,
                    type=param.type.value,
                    description=param.description,
                    required=param.required,
                    enum=param.enum,
                    default=param.default,
                )
                for param in definition.parameters
            ],
        )
        for definition in registry.get_definitions()
    ]


@router.post("/{name}", response_model=ToolInvocationResponse, response_model_exclude_none=True)
async def invoke_tool(
    name: str,
    arguments: Dict[str, Any] = Body(default_factory=dict),
    registry: ToolRegistry = Depends(get_tool_registry),
    context: ToolContext = Depends(get_tool_context),
) -> ToolInvocationResponse:
    """Invoke one tool directly; tool failures are reported in the body."""

    if not registry.has_tool(name):
        raise HTTPException(status_code=404, detail=f"Tool {name} not found")

    executor = ToolExecutor(registry, context, logger=_logger)
    result = await executor.execute_single(
        ToolCall(id=f"api-{uuid.uuid4().hex[:8]}", name=name, arguments=arguments)
    )
    return ToolInvocationResponse(
        tool=name,
        result=jsonable_encoder(result.result),
        error=result.error,
    )

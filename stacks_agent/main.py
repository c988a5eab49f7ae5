from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import chat, health, tools
from .config import ConfigurationError, settings
from .core.chat import describe_error
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .providers.llm.base import LLMProviderError

setup_logging()

# Create FastAPI app
app = FastAPI(
    title="Stacks DeFi Agent API",
    description="Conversational assistant for Stacks wallets, Velar, ALEX and sBTC incentives",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


def _error_envelope(request: Request, exc: Exception) -> JSONResponse:
    status_code, message = describe_error(exc)
    body = {"error": message}
    thread_id = request.headers.get("x-thread-id")
    if thread_id:
        body = {"threadId": thread_id, **body}
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return _error_envelope(request, exc)


@app.exception_handler(LLMProviderError)
async def llm_error_handler(request: Request, exc: LLMProviderError) -> JSONResponse:
    return _error_envelope(request, exc)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(tools.router, tags=["Tools"])
app.include_router(chat.router, tags=["Chat"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Stacks DeFi Agent API",
        "version": "0.1.0",
        "description": "Conversational assistant for Stacks wallets and DeFi protocols",
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "stacks_agent.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )

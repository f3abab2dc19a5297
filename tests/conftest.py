import pytest

from chat_gateway.config import Settings
from chat_gateway.mcp.config import ServerRegistry
from chat_gateway.mcp.models import ServerConfig

from fakes import FakeMCPServer, make_tool, text_result

SERVER_A_ENDPOINT = "https://server-a.example/mcp"


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        mcp_request_timeout=5.0,
        arxiv_timeout=5.0,
    )


@pytest.fixture
def server_a():
    """A server exposing a single ``search`` tool answering "42"."""
    return FakeMCPServer(
        tools=[make_tool("search", "Search things", {"query": {"type": "string"}})],
        results={"search": text_result("42")},
        name="server-a",
    )


@pytest.fixture
def registry():
    return ServerRegistry([
        ServerConfig(id="serverA", name="Server A", endpoint=SERVER_A_ENDPOINT),
        ServerConfig(id="broken", name="Broken", endpoint="https://broken.example/mcp"),
        ServerConfig(id="arxiv", name="arXiv", endpoint="http://export.arxiv.org/api/query", local=True),
    ])

"""Application settings and configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    
    All configurable variables can be overridden from the .env file.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=()  # Disable protected namespace warning
    )
    
    # ========== Chat model ==========
    openai_api_key: str = ""
    openai_api_base: str = "https://models.github.ai/inference"
    default_model: str = "openai/gpt-4o-mini"
    temperature: float = 0.3
    
    # ========== Tool orchestration ==========
    max_tool_rounds: int = 10  # Hard cap on streaming rounds per request
    round_timeout: float = 120.0  # Deadline for one streaming round (seconds)
    tool_call_timeout: float = 60.0  # Deadline for one tool call (seconds)
    tool_preview_chars: int = 100  # Length of the preview in completed status events
    
    # ========== MCP ==========
    mcp_request_timeout: float = 30.0
    mcp_protocol_version: str = "2024-11-05"
    mcp_client_name: str = "mcp-chat-gateway"
    mcp_client_version: str = "0.1.0"
    mcp_servers_file: Optional[str] = None  # Optional JSON file with extra servers
    
    # ========== arXiv ==========
    arxiv_api_base: str = "http://export.arxiv.org/api/query"
    ar5iv_base: str = "https://ar5iv.org"
    arxiv_timeout: float = 30.0
    arxiv_content_limit: int = 15000  # Characters of ar5iv text kept per fetch
    arxiv_user_agent: str = "mcp-chat-gateway/1.0"
    
    # ========== Cancellation ==========
    cancellation_expiry_seconds: int = 300
    
    # ========== Logging & API ==========
    log_level: str = "INFO"
    log_file: Optional[str] = None
    api_host: str = "0.0.0.0"
    api_port: int = 8009


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    All configuration is loaded from environment variables (.env file).
    """
    return Settings()

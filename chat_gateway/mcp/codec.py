"""JSON-RPC 2.0 wire codec for MCP over HTTP.

Builds request envelopes, attaches authentication headers and decodes
responses delivered either as one JSON document or as SSE ``data:`` lines.
"""
import itertools
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx
from mcp.types import INTERNAL_ERROR, PARSE_ERROR

from ..utils.logger import get_logger
from .exceptions import EmptyResponseError, ProtocolError, TransportError
from .models import AuthType, ServerAuth

logger = get_logger(__name__)

JSONRPC_VERSION = "2.0"
ACCEPT_HEADER = "application/json, text/event-stream"
SSE_CONTENT_TYPE = "text/event-stream"
SSE_DATA_PREFIX = "data: "
DEFAULT_TIMEOUT = 30.0

# Shared by every client in the process
_request_ids = itertools.count(1)


def next_request_id() -> int:
    """Return a process-wide monotonic request id."""
    return next(_request_ids)


@dataclass(frozen=True)
class RPCSuccess:
    """A JSON-RPC response carrying ``result``."""
    
    id: Any
    result: Any


@dataclass(frozen=True)
class RPCFailure:
    """A JSON-RPC response carrying ``error``."""
    
    id: Any
    code: int
    message: str
    data: Any = None
    
    def to_exception(self) -> ProtocolError:
        return ProtocolError(self.code, self.message, self.data)


RPCResponse = Union[RPCSuccess, RPCFailure]


def build_request(
    method: str,
    params: Optional[Dict[str, Any]] = None,
    request_id: Optional[int] = None
) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 request envelope."""
    request: Dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id if request_id is not None else next_request_id(),
        "method": method,
    }
    if params is not None:
        request["params"] = params
    return request


def build_headers(auth: Optional[ServerAuth] = None) -> Dict[str, str]:
    """Build the HTTP headers for a request, including authentication."""
    headers = {
        "Content-Type": "application/json",
        "Accept": ACCEPT_HEADER,
    }
    if auth is None or not auth.token:
        return headers
    
    if auth.type == AuthType.BEARER:
        headers["Authorization"] = f"Bearer {auth.token}"
    elif auth.type == AuthType.API_KEY:
        headers[auth.header_name] = auth.token
    return headers


def parse_rpc_response(payload: Any) -> Optional[RPCResponse]:
    """Classify one decoded JSON value as a success or a failure.
    
    Returns:
        RPCSuccess or RPCFailure, or None when the payload is not a
        JSON-RPC response (notifications, requests, bare values).
    """
    if not isinstance(payload, dict):
        return None
    
    if "error" in payload and payload["error"] is not None:
        error = payload["error"]
        if not isinstance(error, dict):
            return RPCFailure(id=payload.get("id"), code=INTERNAL_ERROR, message=str(error))
        code = error.get("code")
        return RPCFailure(
            id=payload.get("id"),
            code=code if isinstance(code, int) else INTERNAL_ERROR,
            message=str(error.get("message", "Unknown error")),
            data=error.get("data"),
        )
    
    if "result" in payload:
        return RPCSuccess(id=payload.get("id"), result=payload["result"])
    
    return None


def parse_sse_body(text: str) -> Any:
    """Extract the JSON-RPC result from an SSE-framed body.
    
    The last ``data:`` line carrying a result wins. A line carrying an
    error fails immediately. Lines that are not JSON are skipped.
    
    Raises:
        ProtocolError: A data line carried a JSON-RPC error.
        EmptyResponseError: No data line carried a result.
    """
    found = False
    result: Any = None
    
    # Only "\n" ends a line; JSON strings may carry other line separators raw
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if not line.startswith(SSE_DATA_PREFIX):
            continue
        data = line[len(SSE_DATA_PREFIX):]
        if not data.strip():
            continue
        
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Skipping non-JSON SSE data line: {data[:80]}")
            continue
        
        response = parse_rpc_response(payload)
        if isinstance(response, RPCFailure):
            raise response.to_exception()
        if isinstance(response, RPCSuccess):
            found = True
            result = response.result
    
    if not found:
        raise EmptyResponseError()
    return result


def parse_json_body(text: str) -> Any:
    """Extract the JSON-RPC result from a plain JSON body.
    
    Raises:
        ProtocolError: The body is not JSON or carries a JSON-RPC error.
        EmptyResponseError: The body carries neither result nor error.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(PARSE_ERROR, f"Invalid JSON response: {e}") from e
    
    response = parse_rpc_response(payload)
    if isinstance(response, RPCFailure):
        raise response.to_exception()
    if response is None:
        raise EmptyResponseError("JSON-RPC response carried no result")
    return response.result


def decode_response(response: httpx.Response) -> Any:
    """Decode an HTTP response into the JSON-RPC result it carries."""
    if not response.is_success:
        raise TransportError(response.status_code, response.reason_phrase, str(response.url))
    
    content_type = response.headers.get("content-type", "")
    if SSE_CONTENT_TYPE in content_type:
        return parse_sse_body(response.text)
    return parse_json_body(response.text)


async def send_request(
    endpoint: str,
    method: str,
    params: Optional[Dict[str, Any]] = None,
    auth: Optional[ServerAuth] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT
) -> Any:
    """Send one JSON-RPC request and return its result.
    
    Args:
        endpoint: MCP server URL.
        method: JSON-RPC method name.
        params: Method parameters.
        auth: Authentication descriptor of the server.
        http_client: Shared client to use; a short-lived one is created otherwise.
        timeout: HTTP timeout in seconds for the short-lived client.
        
    Raises:
        TransportError: Network failure or non-2xx status.
        ProtocolError: JSON-RPC error or undecodable body.
        EmptyResponseError: No result in the response.
    """
    request = build_request(method, params)
    headers = build_headers(auth)
    logger.debug(f"MCP request {request['id']} -> {endpoint}: {method}")
    
    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(endpoint, json=request, headers=headers)
        else:
            response = await http_client.post(endpoint, json=request, headers=headers)
    except httpx.RequestError as e:
        raise TransportError(0, str(e) or type(e).__name__, endpoint) from e
    
    return decode_response(response)

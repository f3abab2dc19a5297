"""MCP chat gateway.

Streams chat completions from a hosted function-calling model and lets the
model call tools exposed by remote MCP servers and a local arXiv provider.
"""

__version__ = "0.1.0"

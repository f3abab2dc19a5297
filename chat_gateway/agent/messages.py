"""Conversation assembly for a chat request."""
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"
HISTORY_ROLES = ("user", "assistant")


class ImageAttachment(BaseModel):
    """An inline image sent with the user message."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    data_url: Optional[str] = Field(None, alias="dataUrl", description="Complete data: URL")
    base64: Optional[str] = Field(None, description="Base64 image data without the data: prefix")
    mime_type: Optional[str] = Field(None, alias="mimeType", description="MIME type of the base64 data")
    name: Optional[str] = Field(None, description="Original file name")


def resolve_image_url(attachment: ImageAttachment) -> Optional[str]:
    """Return the data URL of an attachment, or None if it carries no data."""
    if attachment.data_url:
        return attachment.data_url
    if attachment.base64:
        mime_type = attachment.mime_type or DEFAULT_IMAGE_MIME_TYPE
        return f"data:{mime_type};base64,{attachment.base64}"
    logger.warning(f"Skipping image attachment without data: {attachment.name or 'unnamed'}")
    return None


def resolve_image_urls(attachments: Iterable[ImageAttachment]) -> List[str]:
    urls = []
    for attachment in attachments:
        url = resolve_image_url(attachment)
        if url:
            urls.append(url)
    return urls


def build_user_content(
    text: str,
    image_urls: Optional[List[str]] = None
) -> Union[str, List[Dict[str, Any]]]:
    """Build user message content: plain text, or multimodal parts with images.
    
    Empty content becomes a single space, which every endpoint accepts.
    """
    if not image_urls:
        return text or " "
    
    parts: List[Dict[str, Any]] = []
    if text:
        parts.append({"type": "text", "text": text})
    for url in image_urls:
        parts.append({"type": "image_url", "image_url": {"url": url, "detail": "high"}})
    return parts


def build_messages(
    system_prompt: Optional[str],
    history: Optional[Iterable[Dict[str, Any]]],
    prompt: str,
    image_urls: Optional[List[str]] = None
) -> List[Dict[str, Any]]:
    """Assemble the initial conversation of a request.
    
    The system prompt comes first. System entries in the history are
    dropped so the fresh prompt always wins; only user and assistant turns
    are carried over.
    
    Args:
        system_prompt: Optional system prompt
        history: Prior turns as ``{"role", "content"}`` dicts
        prompt: New user message text
        image_urls: Ordered inline image URLs for the new message
    """
    messages: List[Dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    
    for entry in history or []:
        role = entry.get("role")
        if role not in HISTORY_ROLES:
            continue
        content = entry.get("content")
        if not content:
            continue
        messages.append({"role": role, "content": content})
    
    messages.append({"role": "user", "content": build_user_content(prompt, image_urls)})
    return messages

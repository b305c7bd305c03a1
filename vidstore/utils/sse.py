"""Server-sent event framing for streamed API responses."""

from pydantic import BaseModel


def format_sse(event_type: str, payload: BaseModel) -> str:
    """One ``event:``/``data:`` frame; the payload is serialized as a single JSON line."""
    return f"event: {event_type}\ndata: {payload.model_dump_json()}\n\n"

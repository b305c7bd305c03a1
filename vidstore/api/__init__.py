# vidstore API
from vidstore.api.router import api_router

__all__ = ["api_router"]

from agent_usage.core.middleware.request_id import add_request_id_middleware

__all__ = [
    "add_request_id_middleware",
]

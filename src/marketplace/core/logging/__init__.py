# src/marketplace/core/logging/
# ├─ __init__.py            # public API: setup_logging, stop_queue_logging, context helpers, RequestIDMiddleware
# ├─ builder.py             # make_dict_config(settings) + setup_logging(settings) + queue mode
# ├─ formatters.py          # JsonFormatter, ColorFormatter
# ├─ filters.py             # RequestContextFilter, RedactFilter (+ contextvar helpers)
# ├─ handlers.py            # handler dict factories (console/file)
# └─ middleware.py          # Starlette middleware that sets the request id


from .builder import setup_logging, make_dict_config, stop_queue_logging, get_queue_stats
from .filters import set_request_id, get_request_id, set_user_id, get_user_id, RequestContextFilter, RedactFilter
from .middleware import RequestIDMiddleware

__all__ = [
    "setup_logging",
    "make_dict_config",
    "stop_queue_logging",
    "get_queue_stats",
    "set_request_id",
    "get_request_id",
    "set_user_id",
    "get_user_id",
    "RequestContextFilter",
    "RedactFilter",
    "RequestIDMiddleware",
]

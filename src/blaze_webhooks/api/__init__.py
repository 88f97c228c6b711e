"""REST API for managing webhook endpoints and publishing events.

Example:
    ```python
    import uvicorn
    from blaze_webhooks.api import create_app

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
    ```
"""

from .app import create_app, register_exception_handlers
from .router import router

__all__ = ["create_app", "register_exception_handlers", "router"]

"""Operation id context variable for logging"""

import contextvars

# Create a context variable to store the id of the running certificate operation
operation_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation_id", default=None
)

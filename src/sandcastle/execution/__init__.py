from .rate_limiter import RateLimiter, TokenBucket, get_rate_limiter
from .task_executor import DEFAULT_MAX_ATTEMPTS, TaskExecutor
from .workflow import WorkflowRunner, WorkflowStep

__all__ = [
    "RateLimiter",
    "TokenBucket",
    "get_rate_limiter",
    "TaskExecutor",
    "DEFAULT_MAX_ATTEMPTS",
    "WorkflowRunner",
    "WorkflowStep",
]

"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import Optional

from explorer.bootstrap.config import ServerConfig
from explorer.lifecycle.state import ServerLifecycle
from explorer.pipeline.router import Router


@dataclass
class WorkerContext:
    """Dependencies shared across handler threads."""

    router: Router
    lifecycle: Optional[ServerLifecycle] = None
    config: Optional[ServerConfig] = None

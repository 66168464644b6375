"""Application entrypoint."""

from __future__ import annotations

import uvicorn

from iac_orchestrator.api.app import create_app
from iac_orchestrator.config import get_settings
from iac_orchestrator.infrastructure.observability.logging import setup_logging
from iac_orchestrator.infrastructure.observability.tracing import setup_tracing


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the API server."""
    settings = get_settings()
    setup_logging(settings.observability.log_level, json_format=settings.observability.log_json)
    setup_tracing(settings.observability)

    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.observability.log_level.lower(),
    )


def main() -> None:
    """Run the application."""
    run_server()


if __name__ == "__main__":
    main()

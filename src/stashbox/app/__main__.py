"""Run the stashbox API as a standalone HTTP server.

Usage:
    STASHBOX_PORT=8080 python -m stashbox.app

Settings are read from the environment (see ``StashboxSettings.from_env``).
Outside the local environment every repository must be injected, so this
entry point only serves local development and demos.
"""

import os

import uvicorn

from .main import create_app
from .settings import StashboxSettings


def main():
    host = os.environ.get("STASHBOX_HOST", "127.0.0.1")
    port = int(os.environ.get("STASHBOX_PORT", "8080"))
    settings = StashboxSettings.from_env()

    app = create_app(settings)

    print(f"Stashbox API starting on http://{host}:{port}")
    print(f"Environment: {settings.environment}")

    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()

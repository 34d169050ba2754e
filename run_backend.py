#!/usr/bin/env python3
"""
Launch the support chatbot API with uvicorn.

Host, port and log level come from the environment / .env (see AppConfig).
"""

import uvicorn

from supportbot.config.app_config import get_app_config


def main() -> None:
    config = get_app_config()
    uvicorn.run(
        "supportbot.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        # The app installs its own logging configuration
        log_config=None,
    )


if __name__ == "__main__":
    main()

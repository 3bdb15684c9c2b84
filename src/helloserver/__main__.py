"""
=============================================================================
GREETING SERVER ENTRY POINT
=============================================================================

    python -m helloserver              # listens on 0.0.0.0:8080
    PORT=9090 python -m helloserver    # listens on 0.0.0.0:9090
    helloserver                        # console script, same thing

No command-line arguments: the only configuration is the PORT
environment variable (12-factor style).

=============================================================================
12-FACTOR APP: ENTRY POINT
=============================================================================

1. Read configuration from the environment
2. Construct the application (logger, handler, lifecycle)
3. Run it and hand its exit code to the OS

=============================================================================
"""

import sys

from .config import ServerConfig
from .handlers import GreetingHandler
from .lifecycle import ServerLifecycle
from .log import create_logger


def main() -> int:
    """Build the server from the environment and run it until signalled."""
    logger = create_logger()

    try:
        config = ServerConfig.from_env()
        lifecycle = ServerLifecycle(config, GreetingHandler(logger), logger)
    except ValueError as e:
        logger.error("Invalid configuration", extra={"error": str(e)})
        return 1

    return lifecycle.run()


if __name__ == "__main__":
    sys.exit(main())

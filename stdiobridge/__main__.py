import os

import click
import uvicorn
from dotenv import load_dotenv

from stdiobridge.config.provider import EnvConfigProvider
from stdiobridge.logging_config import get_logging_config

load_dotenv()


@click.command()
@click.option("--host", "host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
@click.option("--port", "port", type=int, default=None, help="Bind port (default: PORT or 3000)")
@click.option("--log-level", "log_level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
def main(host, port, log_level):
    """Serve a stdio JSON-RPC backend over HTTP and SSE."""
    api_config = EnvConfigProvider().get_api_config()
    level = (log_level or api_config.log_level).upper()
    # Read again by stdiobridge.main when uvicorn imports the app
    os.environ["LOG_LEVEL"] = level

    uvicorn.run(
        "stdiobridge.main:app",
        host=host or api_config.host,
        port=port or api_config.port,
        log_level=level.lower(),
        reload=api_config.debug,
        log_config=get_logging_config(level),
    )


if __name__ == "__main__":
    main()

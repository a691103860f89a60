"""keygate entry point: validate config, then start aiohttp server.

Exit codes:
    0  clean shutdown
    1  invalid configuration (bad strategy section, missing key store file)
"""

import argparse
import logging
import sys
from pathlib import Path

from keygate.config import ConfigError, load_config
from keygate.server import create_app

log = logging.getLogger("keygate")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main(argv: list[str] | None = None) -> None:
    from aiohttp import web

    parser = argparse.ArgumentParser(prog="keygate", description="API key auth server")
    parser.add_argument("--config", type=Path, help="YAML config file (default: config/keygate.yaml)")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logging.basicConfig(format=_LOG_FORMAT, stream=sys.stderr)
        log.error("Invalid configuration: %s", exc)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, str(config["logging"]["level"]).upper(), logging.INFO),
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        app = create_app(config)
    except (ConfigError, FileNotFoundError) as exc:
        log.error("Invalid auth strategy configuration: %s", exc)
        sys.exit(1)

    log.info("Starting keygate on port %s", config["server"]["port"])
    web.run_app(app, port=config["server"]["port"])


if __name__ == "__main__":
    main()

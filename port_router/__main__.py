import argparse
import sys

import uvicorn

from port_router.models import ConfigError, load_config
from port_router.server import create_app
from port_router.vars import BIND_HOST, CONFIG_FILE, LOG_LEVEL


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="port-router",
        description="Serve several local HTTP services behind one port.",
    )
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help=f"Path of the TOML configuration file (default: {CONFIG_FILE})",
    )
    parser.add_argument(
        "--host",
        default=BIND_HOST,
        help=f"Interface to listen on (default: {BIND_HOST})",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"port-router: {e}", file=sys.stderr)
        return 1

    print(f"Port router: open http://localhost:{config.router_port}/")
    uvicorn.run(create_app(config), host=args.host, port=config.router_port, log_level=LOG_LEVEL)
    return 0


if __name__ == "__main__":
    sys.exit(main())

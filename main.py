"""explorer: web server to introspect a running container."""

import logging
import sys

from explorer.bootstrap.config import config_from_args, parse_cli_args
from explorer.bootstrap.logging_setup import configure_logging
from explorer.lifecycle.manager import run


def main(argv=None) -> int:
    """Parse configuration, run the server and return the exit status."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_destination, args.log_format == "json")
    run(config_from_args(args))
    logging.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())

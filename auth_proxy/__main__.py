import logging
import sys

import uvicorn

from auth_proxy.vars import HOST, PORT, ConfigurationError, validate_config

logger = logging.getLogger("uvicorn.error")


def main() -> None:
    try:
        validate_config()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"[Server] {e}")
        sys.exit(1)
    uvicorn.run("auth_proxy.server:app", host=HOST, port=PORT, proxy_headers=True)


if __name__ == "__main__":
    main()

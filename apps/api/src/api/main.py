import logging
import os

from intelos.api import serve
from intelos.config import IntelConfig
from intelos.service import IntelligenceOS


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    config = IntelConfig.from_env()
    port = int(os.environ.get("PORT", config.api_port))
    host = os.environ.get("INTELOS_API_HOST", "")
    print(f"Intelligence API running on port {port}")
    serve(IntelligenceOS(config), host, port)


if __name__ == "__main__":
    main()

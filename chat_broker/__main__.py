"""Run with: python -m chat_broker"""

import uvicorn

from chat_broker.api import create_app
from chat_broker.config.settings import settings


def main() -> None:
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

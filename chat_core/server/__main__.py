"""python -m chat_core.server 启动 Relay。"""

import uvicorn

from chat_core.config.settings import settings
from chat_core.infrastructure.logging.logger import logger


def main() -> None:
    logger.info(f"NeuralChat relay listening on http://{settings.host}:{settings.port}")
    uvicorn.run("chat_core.server.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

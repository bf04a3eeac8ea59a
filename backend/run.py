"""Run script for the Wellness Hub backend"""

import uvicorn

from app.config import get_config

if __name__ == "__main__":
    config = get_config()
    uvicorn.run(
        "app.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.environment == "development",
        log_level=config.logging.level,
    )

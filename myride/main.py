import uvicorn

from myride.core.app_factory import create_app
from myride.core.config import settings

app = create_app()


def run() -> None:
    """Serve the API with uvicorn (console script ``myride-api``)."""
    uvicorn.run(
        "myride.main:app",
        host=settings.app.host,
        port=settings.app.port,
        log_level=settings.log.level.lower(),
        # Access lines would log raw client addresses
        access_log=False,
    )

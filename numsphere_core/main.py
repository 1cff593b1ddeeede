"""Service entry point."""

from .api import create_app
from .config import get_settings
from .core.logging import setup_logging

settings = get_settings()

setup_logging(
    level=settings.log_level,
    fmt=settings.log_format,
    service_name=settings.service_name,
)

app = create_app(settings)


# Run with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "numsphere_core.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

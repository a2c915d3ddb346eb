"""API server entry point for python -m vidcast.api"""
import uvicorn
from vidcast.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "vidcast.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )

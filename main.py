"""
Kangga Ride-Hailing & Delivery Backend
======================================
Entry point.  ``python main.py`` serves on ``API_HOST``:``API_PORT``;
``uvicorn main:app`` works too.
"""

import uvicorn

from kangga.api.app import create_app
from kangga.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.reload,
    )

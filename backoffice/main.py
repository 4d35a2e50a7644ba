from fastapi import FastAPI
from typing import Optional
import logging

from backoffice.core.config import Settings, settings as default_settings
from backoffice.core.container import Services, build_services
from backoffice.api import health, verification, deliveries

def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(title=settings.PROJECT_NAME)
    # Built once per process and shared by every request handler
    app.state.services = services or build_services(settings)

    # Include routers
    app.include_router(health.router)
    app.include_router(verification.router)
    app.include_router(deliveries.router)

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.services.close()

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

from fastapi import Request
from backoffice.core.container import Services

def get_services(request: Request) -> Services:
    return request.app.state.services

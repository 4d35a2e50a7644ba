from fastapi import APIRouter, Depends
from backoffice.api.deps import get_services
from backoffice.core.container import Services

router = APIRouter()

@router.get("/health")
def health(services: Services = Depends(get_services)):
    return {
        "status": "ok",
        "ledger_configured": services.ledger_client.is_configured,
        "cached_verdicts": len(services.cache),
    }

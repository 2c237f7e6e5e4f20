from fastapi import APIRouter, Depends, status

from norruva.core.dependencies import ServiceContainer, get_container

router = APIRouter()


@router.get("/", status_code=status.HTTP_200_OK)
def index():
    return {"status": "API is running"}


@router.get("/readiness", status_code=status.HTTP_200_OK)
def readiness_check(container: ServiceContainer = Depends(get_container)):
    return {
        "status": "ready",
        "products": len(container.store.products),
        "background_tasks": container.runner.pending,
    }

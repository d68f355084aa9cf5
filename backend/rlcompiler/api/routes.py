from fastapi import APIRouter
from .v1 import blueprints, patterns

api_router = APIRouter(prefix="/api", tags=["rl-compiler"])

api_router.include_router(blueprints.router, prefix="/v1", tags=["blueprints"])
api_router.include_router(patterns.router, prefix="/v1", tags=["patterns"])

@api_router.get("/")
def read_root():
    return {"message": "RL blueprint compiler"}

from fastapi import APIRouter

from planner.api.routes import brainstorms, projects, synthesis, systems, utils

api_router = APIRouter()
api_router.include_router(utils.router, tags=["utils"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(
    brainstorms.router, prefix="/projects/{project_id}/brainstorms", tags=["brainstorms"]
)
api_router.include_router(
    synthesis.router, prefix="/projects/{project_id}/synthesis", tags=["synthesis"]
)
api_router.include_router(systems.router, prefix="/projects/{project_id}/systems", tags=["systems"])

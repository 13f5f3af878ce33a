from fastapi import APIRouter

from orgchart.api.v1.endpoints import editor, employees, health, orgchart, orgcharts

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router)
api_router.include_router(employees.router)
api_router.include_router(orgchart.router)
api_router.include_router(orgcharts.router)
api_router.include_router(editor.router)

"""Main API router."""

from fastapi import APIRouter

from rdfforge.api.data import router as data_router
from rdfforge.api.dimensions import router as dimensions_router
from rdfforge.api.jobs import router as jobs_router
from rdfforge.api.pipelines import operations_router
from rdfforge.api.pipelines import router as pipelines_router
from rdfforge.api.schedules import router as schedules_router
from rdfforge.api.shapes import router as shapes_router
from rdfforge.api.shapes import templates_router
from rdfforge.api.triplestores import router as triplestores_router
from rdfforge.api.validation import router as validation_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(jobs_router)
api_router.include_router(schedules_router)
api_router.include_router(pipelines_router)
api_router.include_router(operations_router)
api_router.include_router(shapes_router)
api_router.include_router(templates_router)
api_router.include_router(validation_router)
api_router.include_router(data_router)
api_router.include_router(dimensions_router)
api_router.include_router(triplestores_router)

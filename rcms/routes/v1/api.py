from fastapi import APIRouter

from rcms.cases.router import router as cases_router
from rcms.assessments.router import router as assessments_router
from rcms.assignments.router import router as assignments_router
from rcms.careplans.router import router as careplans_router
from rcms.audit.router import router as audit_router

api_router = APIRouter()

# Assessment edit checks live under /cases/assessments and must match before /cases/{case_id}
api_router.include_router(assessments_router)
api_router.include_router(cases_router)
api_router.include_router(assignments_router)
api_router.include_router(careplans_router)
api_router.include_router(audit_router)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recovery_tracker.core.config import settings
from recovery_tracker.core.logging import setup_logging

from recovery_tracker.api.v1.activities.router import router as activities_router
from recovery_tracker.api.v1.budgets.router import router as budgets_router
from recovery_tracker.api.v1.imports.router import router as imports_router
from recovery_tracker.api.v1.recovery_types.router import router as recovery_types_router
from recovery_tracker.api.v1.school_years.router import router as school_years_router
from recovery_tracker.api.v1.settings.router import router as settings_router
from recovery_tracker.api.v1.teachers.router import router as teachers_router


def create_app() -> FastAPI:
    setup_logging(json_output=settings.log_json, log_level=settings.log_level)
    app = FastAPI(title="Recovery Tracker")

    # CORS: allow the dashboard frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers; imports first so /budgets/import is not captured by /budgets/{budget_id}
    app.include_router(imports_router)
    app.include_router(school_years_router)
    app.include_router(teachers_router)
    app.include_router(recovery_types_router)
    app.include_router(budgets_router)
    app.include_router(activities_router)
    app.include_router(settings_router)

    return app


app = create_app()

import logging
from contextlib import AsyncExitStack

from fastapi import FastAPI

from examdesk.connections import mongo_lifespan, redis_lifespan
from examdesk.api.course import router as course_router
from examdesk.api.dashboard import router as dashboard_router
from examdesk.api.exam import router as exam_router
from examdesk.api.user import router as user_router
from examdesk.services.user import ensure_super_admin
from examdesk.utils.config import settings


logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


async def combined_lifespan(app: FastAPI):
    async with AsyncExitStack() as stack:
        await stack.enter_async_context(mongo_lifespan(app))
        await stack.enter_async_context(redis_lifespan(app))
        ensure_super_admin()

        yield


app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.debug, lifespan=combined_lifespan)


@app.get("/health")
def health() -> dict:
    return {"status": "healthy"}


app.include_router(course_router, prefix="/api/courses")
app.include_router(user_router, prefix="/api/users")
app.include_router(exam_router, prefix="/api/exams")
app.include_router(dashboard_router, prefix="/api/dashboard")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
import traceback
from starlette.middleware.base import BaseHTTPMiddleware

# Import logging
from logging_config import logger, log_request_info, log_response_info

# Import routers
from routers import auth, projects, expenses, invitations, notifications
from database.db import init_db
from database.store import ConcurrencyConflict, StoreError
from config import CORS_ORIGINS

# Create FastAPI app
app = FastAPI(
    title="Costify API",
    description="""
    # Costify API

    Shared expense tracking for construction projects.

    ## Features

    - **Projects**: Create projects with a budget and follow total spent against it
    - **Members**: Invite people by link, promote directors and delegate permissions
    - **Expenses**: Record expenses, approve or reject them, and track payments on credit
    - **Deletion & Restore**: Deleted expenses stay recoverable by the project admin
    - **Reports**: Approved totals by status, category and month
    - **Notifications**: In-app notifications for approvals, rejections and deletions

    ## Project Roles

    - **Admin**: Owns the project. Expenses they add are approved immediately
    - **Director**: Approves, rejects and pays expenses; may delete expenses or
      remove members when the admin allows it
    - **Labour**: Adds expenses for approval and sees only their own

    ## Authentication

    Identity tokens are issued by the identity provider. Include the token in
    the Authorization header:

    ```
    Authorization: Bearer your_id_token
    ```

    Changing anything requires a verified email address.
    """,
    version="1.0.0",
    contact={
        "name": "Costify Support",
        "email": "support@costify.app",
    },
    license_info={
        "name": "MIT License",
        "url": "https://opensource.org/licenses/MIT",
    },
    openapi_tags=[
        {
            "name": "Authentication",
            "description": "The identity carried by the caller's token"
        },
        {
            "name": "Projects",
            "description": "Operations related to projects, budgets, members and their permissions"
        },
        {
            "name": "Expenses",
            "description": "Operations related to expenses, approvals, payments and reports"
        },
        {
            "name": "Invitations",
            "description": "Joining projects through invitation links"
        },
        {
            "name": "Notifications",
            "description": "Operations related to user notifications"
        },
        {
            "name": "Root",
            "description": "Root endpoint for the API"
        }
    ]
)

# Logging middleware
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        log_request_info(request)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            log_response_info(response, elapsed_ms=(time.perf_counter() - started) * 1000)
            return response
        except Exception as e:
            logger.error(f"Request failed: {str(e)}")
            logger.error(traceback.format_exc())
            raise

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(projects.router, prefix="/projects", tags=["Projects"])
app.include_router(expenses.router, prefix="/expenses", tags=["Expenses"])
app.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    logger.info("Root endpoint accessed")
    return {"message": "Welcome to Costify API"}

@app.get("/health", tags=["Root"])
async def health():
    return {"status": "ok"}

# Store failures are retryable for the client
@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError):
    if isinstance(exc, ConcurrencyConflict):
        logger.warning(f"Concurrency conflict on {request.url.path}: {str(exc)}")
        detail = "The project is being updated by someone else, please try again"
    else:
        logger.error(f"Store error on {request.url.path}: {str(exc)}")
        detail = "The database is temporarily unavailable, please try again"
    return JSONResponse(status_code=503, content={"detail": detail})

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}")
    logger.error(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={"detail": f"An unexpected error occurred: {str(exc)}"}
    )

# Startup event to initialize database
@app.on_event("startup")
async def startup_event():
    logger.info("Starting application...")
    await init_db()
    logger.info("Application started successfully")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

# main.py
# Entry point for the backend service.
# - Initializes FastAPI app
# - Registers the template catalog routes
# - Provides root health-check endpoint
# - Run with: uvicorn src.main:app --reload
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))
from api.template_routes import router as template_router
from api.template_style_routes import router as template_style_router

app = FastAPI(
    title="Portfolio Groups API",
    description="Template catalog service for portfolio groups",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update this with your frontend URL in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"status": "healthy", "message": "Backend API is running"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Register API routes
app.include_router(template_router)
app.include_router(template_style_router)

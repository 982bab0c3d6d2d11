"""Learning API - HTTP surface for the learning loop and consent

Components:
    models.py: Pydantic request/response models
    routes.py: APIRouter with learning and consent endpoints
    app.py: FastAPI application factory

Usage:
    uvicorn coach.api.app:app --host 127.0.0.1 --port 8090
"""

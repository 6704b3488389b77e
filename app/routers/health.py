"""
Health Check Router
Liveness/readiness probes and a service status overview
"""
import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response

from app.core.config import settings
from app.core.metrics import render_latest
from app.db import mongo
from app.utils import storage
from app.utils.dates import utcnow
from app.utils.scheduler import get_scheduler_status

router = APIRouter()
probe_router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": mongo.iso(utcnow()),
    }


@router.get("/status")
def services_status():
    """
    Check connectivity of the backing services:
    - MongoDB
    - S3 (uploads bucket)
    - Recurring detection scheduler
    """
    status = {
        "timestamp": mongo.iso(utcnow()),
        "services": {},
    }

    status["services"]["mongodb"] = {
        "connected": mongo.ping(),
        "database": settings.DB_NAME,
    }

    s3_status = {
        "connected": False,
        "bucket": settings.S3_BUCKET_NAME,
        "region": settings.S3_REGION,
        "error": None,
    }
    try:
        storage.s3.head_bucket(Bucket=settings.S3_BUCKET_NAME)
        s3_status["connected"] = True
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        s3_status["error"] = f"{error_code}: {str(e)}"
        logger.error(f"S3 check failed: {str(e)}")
    except BotoCoreError as e:
        s3_status["error"] = str(e)
        logger.error(f"S3 check failed: {str(e)}")
    status["services"]["s3"] = s3_status

    status["scheduler"] = get_scheduler_status()
    all_connected = all(service.get("connected", False) for service in status["services"].values())
    status["overall_status"] = "healthy" if all_connected else "degraded"
    return status


@probe_router.get("/healthz")
def healthz():
    return {"ok": True}


@probe_router.get("/readyz")
def readyz():
    if mongo.ping():
        return {"ready": True}
    return JSONResponse(status_code=503, content={"ready": False})


@probe_router.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""
    body, content_type = render_latest()
    return Response(content=body, media_type=content_type)

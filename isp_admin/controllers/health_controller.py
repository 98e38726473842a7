"""
Health controller - liveness endpoint for load balancers and monitoring.
"""

import logging

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from isp_admin.core.limiter_config import limiter
from isp_admin.db.session import SessionLocal

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
@limiter.exempt
def health_check():
    """Always 200 while the process serves requests; reports database state."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.warning("Health check database probe failed", extra={"context": {"error": str(e)}})
        database = "disconnected"
    finally:
        db.close()
    return jsonify({"status": "ok", "database": database}), 200

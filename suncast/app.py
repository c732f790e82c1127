import sys
import uuid

from flask import Flask, Response, g, request

from suncast.api.rate_limiting import init_rate_limiting
from suncast.api.routes import api
from suncast.cache.engine import HistoricalCache
from suncast.cache.store import RecordStore
from suncast.services.forecast import ForecastCache
from suncast.config import Config
from suncast.utils.logging import get_logger, set_request_id, setup_logging


def create_app(store: RecordStore | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        store: Cache store to serve from. Opens Config.CACHE_DATABASE_PATH if not provided.
    """
    # Setup structured logging first
    setup_logging()
    logger = get_logger(__name__)

    app = Flask(__name__)
    app.config["APP_VERSION"] = Config.APP_VERSION
    app.extensions["historical_cache"] = HistoricalCache(store or RecordStore())
    app.extensions["forecast_cache"] = ForecastCache()

    # Request ID middleware - must be before blueprints
    @app.before_request
    def add_request_id() -> None:
        """Generate and store request ID for correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        g.request_id = request_id

    # Log all requests
    @app.before_request
    def log_request() -> None:
        """Log incoming requests."""
        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr,
                "user_agent": request.headers.get("User-Agent", ""),
            },
        )

    # Log responses
    @app.after_request
    def log_response(response: Response) -> Response:
        """Log outgoing responses and echo the request ID."""
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        logger.info(
            "Outgoing response",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "content_length": response.content_length,
            },
        )
        return response

    init_rate_limiting(app)
    app.register_blueprint(api)

    logger.info(
        "Flask app created",
        extra={
            "environment": Config.FLASK_ENV,
            "log_level": Config.LOG_LEVEL,
            "cache_db": str(app.extensions["historical_cache"].store.db_path),
        },
    )
    return app


def main() -> None:
    """Main entry point."""
    # Setup logging early
    setup_logging()
    logger = get_logger(__name__)

    # Validate configuration
    errors = Config.validate()
    if errors:
        logger.error("Configuration validation failed", extra={"errors": errors})
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    app = create_app()
    logger.info(
        "Starting Suncast backend",
        extra={
            "port": Config.PORT,
            "environment": Config.FLASK_ENV,
            "archive_api": Config.ARCHIVE_API_URL,
            "log_level": Config.LOG_LEVEL,
        },
    )
    app.run(host="0.0.0.0", port=Config.PORT, debug=Config.is_development())


if __name__ == "__main__":
    main()

import logging
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from .config import Config
from .exceptions import EasyNoteError

logger = logging.getLogger(__name__)


def create_app(testing: bool = False, services=None):
    app = Flask(__name__)
    app.config["TESTING"] = testing

    logging.basicConfig(level=Config.LOG_LEVEL)

    # CORS configuration for development and production
    allowed_origins = [
        "http://localhost:3000",  # Local frontend dev server
        "http://localhost:5173",  # Vite dev server
    ]

    # Add production frontend URL if set
    frontend_url: Optional[str] = Config.FRONTEND_URL
    if frontend_url:
        allowed_origins.append(frontend_url)

    # In development, allow all origins for easier testing
    if Config.FLASK_ENV == "development":
        CORS(app)
    else:
        CORS(app, origins=allowed_origins)

    if services is None:
        from .services.container import create_services

        services = create_services()
    app.extensions["services"] = services

    @app.errorhandler(EasyNoteError)
    def handle_easynote_error(exc: EasyNoteError):
        logger.warning("Request failed: [%s] %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.http_status_code

    from .routes import bp as api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app

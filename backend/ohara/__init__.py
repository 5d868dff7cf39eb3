import logging
import os
from flask import Flask
from flask_cors import CORS

from .config import Config


def create_app(testing: bool = False, services=None):
    logging.basicConfig(level=Config.LOG_LEVEL)
    Config.validate()

    app = Flask(__name__)
    app.config["TESTING"] = testing

    # CORS configuration for development and production
    allowed_origins = [
        "http://localhost:3000",  # Local Next.js dev server
        "http://localhost:5173",  # Local Vite dev server
    ]

    # Add production frontend URL if set
    frontend_url = os.getenv("FRONTEND_URL") or Config.FRONTEND_URL
    if frontend_url:
        allowed_origins.append(frontend_url)

    # In development, allow all origins for easier testing
    if os.getenv("FLASK_ENV") == "development":
        CORS(app)
    else:
        CORS(app, origins=allowed_origins)

    if services is None:
        from .services.container import create_services

        services = create_services()
    app.extensions["services"] = services

    from .routes import bp as api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app

"""
API gateway: combines the users, events, messages, favorites, payments
and feedback blueprints into one Flask app.
This is the local entrypoint for development.
"""

from flask import Flask, jsonify, request, Response
from flask_cors import CORS
from pymongo.errors import PyMongoError
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")


def cors_origins():
    raw = os.getenv("CORS_ORIGINS", "*")
    if raw.strip() == "*":
        return "*"
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_app(init_indexes: bool = True) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        init_indexes (bool): Create the MongoDB indexes at startup. A failure
            is logged and the app starts anyway without a working database.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    CORS(app, resources={
        r"/*": {
            "origins": cors_origins(),
            "methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
        }
    })

    # --- REGISTER BLUEPRINTS ---
    from backend.auth_service.routes import auth_bp
    from backend.events_service.routes import events_bp
    from backend.messages_service.routes import messages_bp
    from backend.favorites_service.routes import favorites_bp
    from backend.payments_service.routes import payments_bp
    from backend.feedback_service.routes import feedback_bp

    # Paths are kept at the root so existing clients keep working
    app.register_blueprint(auth_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(messages_bp)
    app.register_blueprint(favorites_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(feedback_bp)

    logging.info("All blueprints registered successfully.")

    # --- REQUEST LOGGING ---
    @app.before_request
    def before_request() -> None:
        logging.info(f"Incoming {request.method} {request.path}")

    @app.after_request
    def after_request(response: Response) -> Response:
        logging.info(f"Response {response.status} for {request.method} {request.path}")
        return response

    # --- ERROR HANDLERS ---
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Not Found"}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method Not Allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        logging.error(f"Unhandled error: {getattr(error, 'original_exception', error)}")
        return jsonify({"error": "Internal Server Error"}), 500

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "server_ok"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    if init_indexes:
        from backend.database.db_connection import ensure_indexes
        try:
            ensure_indexes()
        except PyMongoError as e:
            logging.error(f"Could not initialise MongoDB, continuing without it: {e}")

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG", "false").lower() in {"1", "true", "yes"})

"""
=============================================================================
MEETING FEEDBACK ENGINE - APPLICATION ENTRY POINT (app.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This is the "front door" of the server. When you run "python app.py", the
computer starts a web server that the audio and transcription pipelines
post their events to. The server:

  1. Receives prosody samples (voice tone, energy, detected emotions) for
     each meeting participant, about one per second.
  2. Receives transcribed turns together with their text analysis.
  3. Runs the feedback rules and keeps the resulting coaching alerts so the
     host's screen can fetch them.

The actual URL handlers are defined in routes.py; the rules live in
services/ and utils/.

HOW TO RUN:
-----------
  - From project root:  python app.py
  - By default the app is at:  http://localhost:5000

CONFIGURATION:
--------------
  - Settings (cooldowns, feature switches, port) come from the .env file and config.py.
  - See config.py for the full list of variables and their defaults.
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before anything else)
# ---------------------------------------------------------------------------
# config.py reads the environment when it is first imported, so .env must be
# loaded before that import.
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

# ---------------------------------------------------------------------------
# Step 2: Import the web framework and our own modules
# ---------------------------------------------------------------------------
import logging

from flask import Flask
from flask_cors import CORS
from flask_compress import Compress

from routes import register_routes
import config

# ---------------------------------------------------------------------------
# Step 3: Logging and config warnings
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, config.FEEDBACK_LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
config.warn_missing_config()


def create_app() -> Flask:
    """
    Create and configure the Flask application (the web server).

    What it does:
      - Creates a new Flask "app" object.
      - Enables CORS so browser clients on other origins can read feedback.
      - Enables compression for larger responses (e.g. feedback history).
      - Registers all URL routes by calling register_routes(app).

    Returns:
        The configured Flask application.
    """
    app = Flask(__name__)

    # In production you would restrict this to specific domains.
    CORS(app, resources={r"/*": {"origins": "*"}})

    Compress(app)

    register_routes(app)

    return app


# ---------------------------------------------------------------------------
# Create the one global Flask application
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Run the server when this file is executed directly (e.g. "python app.py")
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    # FLASK_DEBUG: Flask's development server with auto-reload.
    # Otherwise Waitress with several threads; events for one meeting are
    # still serialized by the aggregator's per-meeting lock.
    if config.FLASK_DEBUG:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=True
        )
    else:
        import waitress
        waitress.serve(app, host=config.FLASK_HOST, port=config.FLASK_PORT, threads=6)

"""
Flask Application Entry Point

Creates an app instance using the application factory pattern and runs the
development server.

Usage:
    Development: python run.py
    Production: gunicorn -w 4 -b 0.0.0.0:4999 "run:app"
    Flask CLI: flask --app run db upgrade
"""

import logging
import os
import sys

from dotenv import load_dotenv

# Config classes read the environment at import time
load_dotenv()

from tenancy import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

# This instance is used by Gunicorn (run:app)
config_name = os.environ.get("FLASK_ENV", "development")
app = create_app(config_name)

if __name__ == '__main__':
    # Port is configured in app.config (default 4999)
    port = app.config.get('FLASK_PORT', 4999)
    debug = app.config.get('DEBUG', True)

    app.run(
        host='0.0.0.0',
        port=port,
        debug=debug
    )

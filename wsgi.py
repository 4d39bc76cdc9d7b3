import os

import config
from app import app, init_db


# Ensure required runtime folders/tables exist when running via Gunicorn/Werkzeug.
os.makedirs(config.INSTANCE_DIR, exist_ok=True)
os.makedirs(config.EXPORT_DIR, exist_ok=True)
init_db()

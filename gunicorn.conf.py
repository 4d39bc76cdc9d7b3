import os
from config import HOST, LOG_LEVEL, PORT

bind = os.getenv("AGROFORMS_GUNICORN_BIND", f"{HOST}:{PORT}")
workers = int(os.getenv("AGROFORMS_GUNICORN_WORKERS", "2"))
threads = int(os.getenv("AGROFORMS_GUNICORN_THREADS", "4"))
# PDF exports of large tables can take a while
timeout = int(os.getenv("AGROFORMS_GUNICORN_TIMEOUT", "120"))
loglevel = LOG_LEVEL.lower()
accesslog = "-"
errorlog = "-"

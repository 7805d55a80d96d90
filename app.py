# Thin entrypoint exposing the reference API's Flask `server`
from roster.config import get_settings
from roster.logs import setup_logging
from roster.server import create_server

setup_logging()
server = create_server()


if __name__ == "__main__":  # pragma: no cover
    # For production: use gunicorn, e.g.:
    # gunicorn app:server -c gunicorn.conf.py
    settings = get_settings()
    server.run(host="0.0.0.0", port=settings.port, debug=settings.debug)

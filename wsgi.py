"""
WSGI entry point for the wallet authentication service
"""
from dotenv import load_dotenv

load_dotenv()

from walletauth.config import run_options  # noqa: E402
from walletauth.factory import create_app  # noqa: E402

app = create_app()

# Gunicorn/uWSGI compatibility
application = app

if __name__ == "__main__":
    app.run(**run_options(app.config["APP_CONFIG"]))

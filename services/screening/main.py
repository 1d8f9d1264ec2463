# Entrypoint for `uvicorn services.screening.main:app`.
# Keeps the deploy command stable while the app module grows.

from services.screening.app import app  # noqa: F401

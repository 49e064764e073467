"""api/ -- FastAPI application object, middleware and JSON endpoints for Doorman."""

"""FastAPI application exposing the capture service over HTTP."""

"""HTTP API: FastAPI application, routes, auth dependency and middleware"""

"""Core battle primitives (stages, sampling, pacing, and the round decision engine).

Kept free of Redis and FastAPI concerns so it can be reused by the executor, API routes, and tests.
"""

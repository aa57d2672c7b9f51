"""Background jobs.

The HTTP app only *emits* jobs through `dispatch`; Celery itself is imported
lazily there so request handling never depends on the broker being up.
"""

"""
Error types raised by the services and mapped to HTTP responses in main.py.

- InputError: the request itself is invalid (400)
- NotFoundError: a referenced entity does not exist (404)
- EmbeddingUnavailableError: an operation that cannot degrade needed an embedding (503)
"""


class FeedsenseError(Exception):
    status_code = 500


class InputError(FeedsenseError, ValueError):
    status_code = 400


class NotFoundError(FeedsenseError, LookupError):
    status_code = 404


class EmbeddingUnavailableError(FeedsenseError):
    status_code = 503

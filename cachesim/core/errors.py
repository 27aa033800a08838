"""Exceptions raised by the cache core."""


class InvalidConfiguration(ValueError):
    """Cache parameters that cannot describe a real cache.

    Raised only while building a cache; a cache that was built never
    raises this afterwards.
    """

"""Infrastructure backends: Redis connectivity, cache stores, mutexes, serializers."""

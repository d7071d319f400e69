"""Work queue providers.

RedisStreamWorkQueue for deployments, InMemoryWorkQueue for local runs and tests.
"""

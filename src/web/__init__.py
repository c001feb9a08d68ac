"""
HTTP surface for the weather forecast cache.

Provides a Starlette application for cache statistics and cleanup plus the
background scheduler that reclaims expired forecasts.
"""

"""
Middleware modules for the field operations API.

Provides request processing middleware for:
- Correlation ID tracking for tracing deletion and upload batches in logs
"""

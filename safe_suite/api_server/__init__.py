"""
API server package — the SAFE core service over HTTP/REST.

Authenticates callers, exposes the module registry, and routes operation
calls to in-process or remote modules. Build the app with
safe_suite.api_server.server.create_app().
"""

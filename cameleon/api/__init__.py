"""cameleon.api

HTTP surface: control routes for the live and photo paths plus the /api proxy.
"""

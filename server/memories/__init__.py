"""
Backend package for the memories / invitation page.

This package provides a FastAPI application that mails calendar invites
and keeps a JSON document of photo memories mirrored to object storage.
"""

# Routes package init
"""
NoteTaker Backend - API Routes Package
======================================

What:  HTTP route handlers that accept requests and return responses.
How:   Each route module handles one resource.

Route Inventory (API_PREFIX defaults to /api/v1):
    - notes.py:   POST   {prefix}/notes
                  GET    {prefix}/notes
                  GET    {prefix}/notes/{id}
                  PATCH  {prefix}/notes/{id}
                  DELETE {prefix}/notes/{id}
                  POST   {prefix}/notes/{id}/grammar-check
                  GET    {prefix}/notes/{id}/attachments/{attachment_id}
    - health.py:  GET    /health

Routes stay thin: read the request, call NoteService, shape the response.
"""

"""
Mindak Reservations Backend — API Routes Package
================================================

Route Inventory:
    - public.py:        /api/public/...                  (forms, catalog, submissions)
    - forms.py:         /api/admin/forms/{form_type}/... (questions, answer options)
    - reservations.py:  /api/admin/reservations/{kind}/... (list, details, status, notes)
    - services.py:      /api/admin/services, /api/admin/service-categories
    - analytics.py:     /api/admin/analytics/...
    - files.py:         /api/files/{path}                (stored answer images)
    - health.py:        /health

Routers stay thin: parse the request, call one service method, shape the
response. Admin mutations require the X-Actor-ID header.
"""

"""
Pilsa Backend — API Routes Package
===================================

Route Inventory:
    - health.py:          GET  /health
    - profile.py:         GET|POST /api/user/profile
    - providers.py:       GET  /api/user/providers
                          POST /api/user/providers/link
                          DELETE /api/user/providers/{provider}
                          POST /api/user/providers/disconnect-all
    - transcriptions.py:  POST /api/transcription
                          GET  /api/daily-stats
                          GET  /api/completed-verses
    - churches.py:        GET  /api/churches
                          GET|POST /api/user/church-memberships
                          DELETE /api/user/church-memberships/{id}
                          POST /api/user/church-memberships/{id}/primary
    - bible.py:           GET  /api/bible/... (public)

Routes stay thin: parse the request, call one service, shape the response.
Status codes for failures come from the exception handlers in main.py.
"""

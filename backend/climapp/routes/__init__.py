"""
Climapp Backend: API Routes Package
====================================

What:  HTTP route handlers that accept requests and return responses.
How:   One module per resource; each exposes a `router` included by
       main.create_app().

Route Inventory:
    - ai.py:            POST /ai/process-audio         (voice memo → items)
                        GET  /ai/status                (pipeline configuration)
    - auth.py:          POST /auth/signup, /auth/login, /auth/forgot-password
                        GET  /auth/profile
    - clients.py:       POST /clientes, GET /clientes/{uid}
                        PUT|DELETE /clientes/{uid}/{codigo}
    - atendimentos.py:  POST /atendimentos, GET /atendimentos/estagios/lista
                        GET /atendimentos/{uid}, GET|PUT|DELETE /atendimentos/{uid}/{codigo}
                        POST /atendimentos/{codigo}/orcamento
    - uploads.py:       POST /upload/orcamento, POST /upload/orcamento/multiple
                        DELETE /upload/orcamento/{publicId}, GET /upload/status
    - health.py:        GET  /health

Routes stay thin: read the request, call a service, shape the envelope.
Business rules live in services/.
"""

"""
Climapp Backend: Services Layer
================================

What:  Business logic between the routes (HTTP) and the database or the
       upstream APIs.
How:   Services take plain values or request schemas and return ORM rows or
       response schemas. Failures leave as typed ClimappErrors.

Service Inventory:
    - audio_pipeline:        validate → transcribe → extract → filter → assemble
    - transcription_service: Deepgram speech-to-text adapter
    - gemini_service:        Gemini structured-extraction adapter
    - extraction_parser:     tolerant JSON recovery from model output
    - confidence_filter:     confidence coercion and threshold filter
    - upstream:              shared retry and transport-error translation
    - auth_service:          Firebase Identity Toolkit client
    - client_service:        /clientes CRUD
    - atendimento_service:   /atendimentos CRUD and orçamento
    - upload_service:        Cloudinary signed uploads
"""

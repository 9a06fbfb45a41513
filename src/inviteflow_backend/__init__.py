"""
InviteFlow Backend - REST API for bulk event-invitation generation

This package provides a FastAPI-based web service that orchestrates the
Foxit PDF Services and Document Generation APIs. It enables:

- DOCX template analysis into a fill-in CSV header
- Bulk PDF generation from a template and a CSV data file
- A QR access code page appended to every generated invitation
- Merged, individual and ZIP downloads of a generated batch
- Token-gated viewer links that record the first view

The backend never stores document bytes itself. The remote platform owns
every document; this service sequences uploads, remote tasks and polling,
and keeps an in-process registry of batches and viewing tokens.

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - foxit_client: Remote request layer and task polling
    - access_code: QR rendering and access-code page attachment
    - batch_manager: Row pipeline and batch aggregation
    - registry: In-process batch and token store
    - archive: Streaming ZIP assembly
    - configuration: Config loading and merging logic
    - errors: Tagged error taxonomy
    - models: Pydantic models for request/response validation
    - utils: CSV, temp file and string utilities

Usage:
    Run the API server with:
        uvicorn inviteflow_backend.main:app --host 0.0.0.0 --port 3087
"""

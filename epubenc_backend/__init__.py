"""Backend for the stateless EPUB encryption gateway.

The FastAPI route handler stays thin; the pieces live here:
- request-scoped workspace lifecycle (always removed when the request ends)
- multipart ingestion with a hard size limit
- the encryption engine boundary and its lcpencrypt implementation
- metadata assembly and streamed delivery of the encrypted artifact

Security note:
The response metadata carries the content key. It is never written to logs
or error messages, and nothing outlives the request.
"""

"""Streaming batch OCR service.

Accepts images and PDFs, rasterizes PDFs page by page, sends each page to
a vision-language recognition backend (Ollama or a GLM-OCR SDK sidecar)
and streams per-file and per-page progress as server-sent events.
"""

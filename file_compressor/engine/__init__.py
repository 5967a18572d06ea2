"""Encoders: Pillow for images, Ghostscript for PDFs."""

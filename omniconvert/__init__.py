"""
OmniConvert lossless re-export service.

Takes an uploaded document or image, has an external reconstruction service
turn it into a constrained HTML fragment, and re-encodes that fragment into
PDF, DOCX, TXT, JPG, PNG or Markdown.
"""

__version__ = "1.0.0"

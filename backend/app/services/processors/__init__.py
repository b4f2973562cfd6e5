"""
Content Processors Package

Text preparation steps shared by the ingestion gateway and the background
processor.

Modules:
--------
- sanitizer: Control-character stripping and page joining
- chunker: Document and transcript chunking
"""

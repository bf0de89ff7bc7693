"""
LM Studio AI Image Metadata Helpers

This package keeps user preferences for AI image metadata (language, faces
directory, image collection, index location) with session overrides, finds
images by the keywords and people stored in their JSON sidecars, and calls
an LM Studio (or other OpenAI-compatible) endpoint to describe images and
transform text.
"""

__version__ = "1.0.0"

"""
wkhtml-service - HTTP front end for wkhtmltopdf / wkhtmltoimage.

Each request is translated into exactly one invocation of the rendering
binary; the rendered file is read back and returned as the response body.
"""

__version__ = "0.1.0"

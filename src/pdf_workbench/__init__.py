"""
pdf-workbench package.

Why this file exists:
- It marks this folder as a package so `python -m pdf_workbench` works after install.
- It keeps import side effects minimal; the CLI lives in cli.py and the
  document operations live in their own modules.
"""

__all__ = ["__version__"]

# Keep a simple version string for manifests and debugging.
__version__ = "0.5.2"

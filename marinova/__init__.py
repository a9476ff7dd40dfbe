"""Marinova Ocean Intelligence - Backend.

A thin REST service behind the Marinova single-page client:
- account registration / login with stateless JWT sessions
- email verification
- per-feature usage credits and subscription gating

Weather data and AI narratives come from external providers; the backend only
decides who may call them and records the usage.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"

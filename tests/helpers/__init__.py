"""
Hellas launcher - Test Helpers

Provides utilities for testing:
- Fake HTTP sessions and responses
- ZIP archive builders
- Launcher construction helpers
"""

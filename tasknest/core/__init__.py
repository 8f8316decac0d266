"""
Core utilities shared by every TaskNest component.

Modules:
    - paths: Platform-aware directory resolution
    - logging_manager: Rotating file logging and CLI error handling
    - exceptions: Error taxonomy
"""

# leadcapture/core/__init__.py
"""
Core configuration, exception taxonomy, and logging setup.
"""

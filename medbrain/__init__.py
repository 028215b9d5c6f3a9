"""
medbrain - deterministic biomarker evaluation and multi-agent analysis workflow
"""
__version__ = "1.0.0"
